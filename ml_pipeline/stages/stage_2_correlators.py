import numpy as np
import pandas as pd
import scipy.sparse as sp

from common.constants import PATHS
from common.utils import setup_logging
from dataflow import KeyedDataset
from fusion.data_models import ActionDataset, CorrelatorMap, TextList

logger = setup_logging(__name__, PATHS["train_log_file"])


def _x_log_x(x: np.ndarray) -> np.ndarray:
    x = np.asarray(x, dtype=np.float64)
    out = np.zeros_like(x)
    positive = x > 0
    out[positive] = x[positive] * np.log(x[positive])
    return out


def _entropy(*counts: np.ndarray) -> np.ndarray:
    total = np.sum(counts, axis=0)
    return _x_log_x(total) - np.sum([_x_log_x(c) for c in counts], axis=0)


def log_likelihood_ratio(k11, k12, k21, k22) -> np.ndarray:
    """Dunning's G² for 2x2 contingency tables, elementwise over arrays."""
    row_entropy = _entropy(k11 + k12, k21 + k22)
    col_entropy = _entropy(k11 + k21, k12 + k22)
    matrix_entropy = _entropy(k11, k12, k21, k22)
    llr = 2.0 * (row_entropy + col_entropy - matrix_entropy)
    # rounding can push independent pairs slightly negative
    return np.maximum(llr, 0.0)


def _binary_matrix(df: ActionDataset, user_index: pd.Index, item_index: pd.Index) -> sp.csr_matrix:
    pairs = df.drop_duplicates()
    rows = user_index.get_indexer(pairs["actor_id"])
    cols = item_index.get_indexer(pairs["target_id"])
    data = np.ones(len(pairs), dtype=np.float64)
    return sp.csr_matrix((data, (rows, cols)), shape=(len(user_index), len(item_index)))


class CooccurrenceCorrelatorProvider:
    """
    Cooccurrence (primary action) and cross-cooccurrence (secondary actions) correlators.

    For each item of the primary action, keeps the items of the given action whose
    cooccurrence is most significant by log-likelihood ratio, strongest first.
    """

    def __init__(self, max_correlators_per_item: int = 50, min_llr: float = 0.0):
        self.max_correlators_per_item = max_correlators_per_item
        self.min_llr = min_llr

    def compute_correlators(self, action_name: str, primary: ActionDataset, dataset: ActionDataset) -> CorrelatorMap:
        users = pd.Index(pd.unique(pd.concat([primary["actor_id"], dataset["actor_id"]], ignore_index=True)))
        primary_items = pd.Index(pd.unique(primary["target_id"]))
        action_items = pd.Index(pd.unique(dataset["target_id"]))

        p = _binary_matrix(primary, users, primary_items)
        a = _binary_matrix(dataset, users, action_items)

        # (primary items x action items) user counts
        cooccurrence = (p.T @ a).tocoo()
        primary_counts = np.asarray(p.sum(axis=0)).ravel()
        action_counts = np.asarray(a.sum(axis=0)).ravel()
        n_users = float(len(users))

        k11 = cooccurrence.data
        k12 = primary_counts[cooccurrence.row] - k11
        k21 = action_counts[cooccurrence.col] - k11
        k22 = n_users - k11 - k12 - k21
        scores = log_likelihood_ratio(k11, k12, k21, k22)

        scored = pd.DataFrame(
            {
                "item_id": primary_items[cooccurrence.row],
                "related_id": action_items[cooccurrence.col],
                "score": scores,
            }
        )
        scored = scored[(scored["item_id"] != scored["related_id"]) & (scored["score"] > self.min_llr)]
        scored = scored.sort_values(["item_id", "score", "related_id"], ascending=[True, False, True])
        scored = scored.groupby("item_id", sort=False).head(self.max_correlators_per_item)

        related = scored.groupby("item_id", sort=False)["related_id"].agg(tuple)
        logger.info(f"Correlators[{action_name}]: {len(related):,} items with related {action_name} items")

        dataset_out = KeyedDataset.from_pairs(
            ((item_id, {action_name: TextList(ids)}) for item_id, ids in related.items()),
            name=action_name,
        )
        return CorrelatorMap(action_name=action_name, dataset=dataset_out)
