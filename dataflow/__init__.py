"""
Local partitioned dataset abstraction used by every pipeline stage.
"""

from .partitioned import KeyedDataset, partition_for

__all__ = ["KeyedDataset", "partition_for"]
