"""
Index backends and the hot-swap publisher.
"""

from .backend import IndexBackend, build_mappings
from .es_client import ElasticsearchBackend
from .memory_backend import InMemoryIndexBackend
from .publisher import HotSwapPublisher, PublishResult, PublishState

__all__ = [
    "IndexBackend",
    "build_mappings",
    "ElasticsearchBackend",
    "InMemoryIndexBackend",
    "HotSwapPublisher",
    "PublishResult",
    "PublishState",
    "get_backend",
]


def get_backend(name: str = "memory", **kwargs) -> IndexBackend:
    if name == "elasticsearch":
        return ElasticsearchBackend(**kwargs)
    if name == "memory":
        return InMemoryIndexBackend()
    raise ValueError(f"Unknown index backend: {name!r}")
