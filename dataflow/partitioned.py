"""
Partitioned, immutable keyed datasets.

A KeyedDataset is a sequence of partitions, each a mapping from key to value.
Keys are hash-partitioned with a stable hash so the same key always lands in the
same partition, which lets two datasets be cogrouped partition by partition.
Transformations run per partition on a thread pool; results are always
reassembled in partition order, never in completion order.

count(), is_empty(), take() and collect() force every partition to be computed
and are the only synchronization points.
"""

import zlib
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Hashable, Iterable, Iterator, List, Optional, Sequence, Tuple

from common.constants import DATASETS

_MISSING = object()


def partition_for(key: Hashable, num_partitions: int) -> int:
    """Stable partition index for a key, independent of PYTHONHASHSEED."""
    return zlib.crc32(str(key).encode("utf-8")) % num_partitions


def _run_partitions(fn: Callable[[Any], Any], partitions: Sequence[Any], parallelism: Optional[int] = None) -> List[Any]:
    workers = parallelism or DATASETS["parallelism"]
    if workers <= 1 or len(partitions) <= 1:
        return [fn(p) for p in partitions]
    with ThreadPoolExecutor(max_workers=workers) as executor:
        # executor.map yields in submission order
        return list(executor.map(fn, partitions))


class KeyedDataset:
    """Hash-partitioned mapping from key to value. Never mutated after construction."""

    def __init__(self, partitions: Sequence[Dict[Hashable, Any]], name: Optional[str] = None):
        if not partitions:
            raise ValueError("A KeyedDataset needs at least one partition")
        self._partitions: Tuple[Dict[Hashable, Any], ...] = tuple(partitions)
        self.name = name

    def __repr__(self) -> str:
        return f"KeyedDataset(name={self.name!r}, num_partitions={self.num_partitions})"

    # region Construction
    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[Tuple[Hashable, Any]],
        num_partitions: Optional[int] = None,
        name: Optional[str] = None,
        combine: Optional[Callable[[Any, Any], Any]] = None,
    ) -> "KeyedDataset":
        """
        Build a dataset from (key, value) pairs.
        Duplicate keys are folded with ``combine(old, new)`` in input order, or the later pair wins.
        """
        n = num_partitions or DATASETS["num_partitions"]
        partitions: List[Dict[Hashable, Any]] = [{} for _ in range(n)]
        for key, value in pairs:
            part = partitions[partition_for(key, n)]
            if combine is not None and key in part:
                part[key] = combine(part[key], value)
            else:
                part[key] = value
        return cls(partitions, name=name)

    @classmethod
    def from_mapping(cls, mapping: Dict[Hashable, Any], num_partitions: Optional[int] = None, name: Optional[str] = None):
        return cls.from_pairs(mapping.items(), num_partitions=num_partitions, name=name)

    @classmethod
    def empty(cls, num_partitions: Optional[int] = None, name: Optional[str] = None) -> "KeyedDataset":
        return cls([{} for _ in range(num_partitions or DATASETS["num_partitions"])], name=name)

    # endregion

    @property
    def num_partitions(self) -> int:
        return len(self._partitions)

    # region Transformations
    def map_values(self, fn: Callable[[Any], Any], name: Optional[str] = None) -> "KeyedDataset":
        return self.map_items(lambda _key, value: fn(value), name=name)

    def map_items(self, fn: Callable[[Hashable, Any], Any], name: Optional[str] = None) -> "KeyedDataset":
        """Apply ``fn(key, value)`` to every entry, keeping keys and partitioning."""
        partitions = _run_partitions(lambda part: {k: fn(k, v) for k, v in part.items()}, self._partitions)
        return KeyedDataset(partitions, name=name or self.name)

    def repartition(self, num_partitions: int) -> "KeyedDataset":
        if num_partitions == self.num_partitions:
            return self
        return KeyedDataset.from_pairs(self.items(), num_partitions=num_partitions, name=self.name)

    def cogroup(
        self,
        other: "KeyedDataset",
        merge: Callable[[Any, Any], Any],
        name: Optional[str] = None,
    ) -> "KeyedDataset":
        """
        Join two datasets over the union of their keys.

        ``merge(left, right)`` receives ``None`` for the side where a key is absent.
        Keys only in ``other`` follow keys of ``self`` within each partition.
        """
        if other.num_partitions != self.num_partitions:
            other = other.repartition(self.num_partitions)

        def _merge_partition(pair):
            left, right = pair
            merged = {}
            for key, value in left.items():
                merged[key] = merge(value, right.get(key))
            for key, value in right.items():
                if key not in left:
                    merged[key] = merge(None, value)
            return merged

        partitions = _run_partitions(_merge_partition, list(zip(self._partitions, other._partitions)))
        return KeyedDataset(partitions, name=name)

    # endregion

    # region Materialization
    def count(self) -> int:
        return sum(len(part) for part in self._partitions)

    def is_empty(self) -> bool:
        return all(not part for part in self._partitions)

    def take(self, n: int) -> List[Tuple[Hashable, Any]]:
        taken = []
        for key, value in self.items():
            if len(taken) >= n:
                break
            taken.append((key, value))
        return taken

    def items(self) -> Iterator[Tuple[Hashable, Any]]:
        for part in self._partitions:
            yield from part.items()

    def keys(self) -> Iterator[Hashable]:
        for part in self._partitions:
            yield from part.keys()

    def get(self, key: Hashable, default: Any = None) -> Any:
        value = self._partitions[partition_for(key, self.num_partitions)].get(key, _MISSING)
        return default if value is _MISSING else value

    def collect(self) -> Dict[Hashable, Any]:
        return dict(self.items())

    # endregion
