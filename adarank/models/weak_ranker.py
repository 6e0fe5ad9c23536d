"""Weak ranker induction for AdaRank.

The ordering a single-feature ranker produces for a query never depends on the
query weights, so the metric of every (feature, orientation) candidate on
every query is computed once up front. Each boosting round then reduces to a
matrix-vector product between that cached table and the current weights.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Collection, List, Optional, Sequence, Tuple

import numpy as np

from .core import DataSet, Orientation, WeakRanker
from .evaluators import MAP, Evaluator
from ..utils.error_handling import EmptyDataSetError, NoFeaturesError


logger = logging.getLogger(__name__)

# Candidate order fixes the tie-break: lower feature index first, then
# ascending before descending.
CANDIDATE_ORIENTATIONS = (Orientation.ASCENDING, Orientation.DESCENDING)


def stable_order(scores: np.ndarray) -> np.ndarray:
    """Indices sorting ``scores`` descending, ties kept in original order."""
    return np.argsort(-np.asarray(scores, dtype=np.float64), kind="stable")


def resolve_features(dataset: DataSet, features: Optional[Sequence[int]] = None) -> List[int]:
    """Feature indices to build candidates from.

    A requested subset is intersected with the indices the dataset carries.
    Requested indices missing from every data point are dropped with a warning.

    Raises:
        NoFeaturesError: If no requested index occurs in the dataset
    """
    corpus_features = dataset.feature_indices()
    if not corpus_features:
        raise NoFeaturesError("Training data points carry no feature indices")
    if features is None:
        return corpus_features

    requested = sorted(set(features))
    if not requested:
        raise NoFeaturesError("The configured feature subset is empty")

    present = set(corpus_features)
    kept = [index for index in requested if index in present]
    dropped = [index for index in requested if index not in present]
    if not kept:
        raise NoFeaturesError(
            f"None of the configured features {requested} occur in the training data",
            {"requested": requested, "available": corpus_features},
        )
    if dropped:
        logger.warning("Ignoring features absent from the training data: %s", dropped)
    return kept


class QueryFeatureCache:
    """Dense per-query feature matrices and labels for a fixed feature list."""

    def __init__(self, dataset: DataSet, feature_indices: Sequence[int]):
        self.feature_indices: List[int] = list(feature_indices)
        self.query_ids = dataset.query_ids
        self._column = {index: j for j, index in enumerate(self.feature_indices)}
        self.matrices: List[np.ndarray] = [query.feature_matrix(self.feature_indices) for query in dataset]
        self.labels: List[np.ndarray] = [query.labels for query in dataset]

    def __len__(self) -> int:
        return len(self.matrices)

    def column(self, position: int, feature_index: int) -> np.ndarray:
        """Values of ``feature_index`` for the documents of the query at ``position``."""
        j = self._column.get(feature_index)
        if j is None:
            return np.zeros(self.matrices[position].shape[0], dtype=np.float64)
        return self.matrices[position][:, j]

    def ranked_labels(self, position: int, scores: np.ndarray) -> np.ndarray:
        return self.labels[position][stable_order(scores)]


@dataclass(frozen=True)
class Selection:
    """Outcome of one induction step."""
    ranker: WeakRanker
    performance: float
    per_query: np.ndarray


class WeakRankerInducer:
    """Selects the single-feature ranker with the best weighted performance."""

    def __init__(self, dataset: DataSet, evaluator: Optional[Evaluator] = None,
                 features: Optional[Sequence[int]] = None, n_jobs: int = 1):
        """Precompute candidate metrics.

        Args:
            dataset: Training queries
            evaluator: Per-query metric (MAP by default)
            features: Feature indices to consider (all corpus features if None)
            n_jobs: Worker threads used for the precomputation

        Raises:
            EmptyDataSetError: If the dataset holds no queries
            NoFeaturesError: If no requested feature index occurs in the dataset
        """
        if len(dataset) == 0:
            raise EmptyDataSetError("Cannot induce weak rankers from a dataset with no queries")

        feature_indices = resolve_features(dataset, features)

        self.evaluator = evaluator or MAP()
        self.cache = QueryFeatureCache(dataset, feature_indices)
        self.feature_indices = feature_indices
        self.n_jobs = n_jobs
        self.candidates: List[WeakRanker] = [
            WeakRanker(index, orientation)
            for index in feature_indices
            for orientation in CANDIDATE_ORIENTATIONS
        ]
        self.performance_table = self._build_performance_table()

        logger.debug("Cached %d candidate rankers over %d queries",
                     len(self.candidates), len(self.cache))

    def _feature_rows(self, j: int) -> Tuple[int, np.ndarray]:
        rows = np.zeros((len(CANDIDATE_ORIENTATIONS), len(self.cache)), dtype=np.float64)
        for q, (matrix, labels) in enumerate(zip(self.cache.matrices, self.cache.labels)):
            values = matrix[:, j]
            for r, orientation in enumerate(CANDIDATE_ORIENTATIONS):
                ranked = labels[stable_order(orientation.sign * values)]
                rows[r, q] = self.evaluator.evaluate(ranked)
        return j, rows

    def _build_performance_table(self) -> np.ndarray:
        """Metric of every candidate on every query, shape (candidates, queries)."""
        width = len(CANDIDATE_ORIENTATIONS)
        table = np.zeros((len(self.candidates), len(self.cache)), dtype=np.float64)
        columns = range(len(self.feature_indices))

        if self.n_jobs > 1 and len(self.feature_indices) > 1:
            with ThreadPoolExecutor(max_workers=self.n_jobs) as executor:
                results = list(executor.map(self._feature_rows, columns))
        else:
            results = [self._feature_rows(j) for j in columns]

        # Each feature owns a disjoint block of rows
        for j, rows in results:
            table[j * width:(j + 1) * width] = rows
        return table

    def weighted_performance(self, query_weights: np.ndarray) -> np.ndarray:
        weights = np.asarray(query_weights, dtype=np.float64)
        if weights.shape != (len(self.cache),):
            raise ValueError(
                f"Expected {len(self.cache)} query weights, got shape {weights.shape}"
            )
        return self.performance_table @ weights

    def induce(self, query_weights: np.ndarray,
               excluded_features: Collection[int] = ()) -> Optional[Selection]:
        """Pick the candidate maximising the weighted metric.

        Args:
            query_weights: One weight per training query
            excluded_features: Feature indices that may not be selected

        Returns:
            The selection, or None if every feature is excluded
        """
        scores = self.weighted_performance(query_weights)
        if excluded_features:
            mask = np.array([c.feature_index in excluded_features for c in self.candidates])
            if mask.all():
                return None
            scores = np.where(mask, -np.inf, scores)

        # argmax keeps the first maximum, which follows the candidate order
        best = int(np.argmax(scores))
        return Selection(
            ranker=self.candidates[best],
            performance=float(scores[best]),
            per_query=self.performance_table[best].copy(),
        )


def induce(dataset: DataSet, query_weights: np.ndarray, evaluator: Optional[Evaluator] = None,
           features: Optional[Sequence[int]] = None) -> WeakRanker:
    """Induce the best weak ranker for ``dataset`` under ``query_weights``."""
    selection = WeakRankerInducer(dataset, evaluator, features).induce(query_weights)
    return selection.ranker


def compute_confidence(performance: float, epsilon: float = 1e-6) -> Tuple[float, bool]:
    """AdaRank amount of say ``0.5 * ln((1 + perf) / (1 - perf))``.

    ``performance`` is clamped to ``[-1 + epsilon, 1 - epsilon]`` so the result
    is always finite.

    Returns:
        Tuple of (confidence, whether the clamp was applied)
    """
    if math.isnan(performance):
        raise ValueError("Weighted performance is NaN")
    low, high = -1.0 + epsilon, 1.0 - epsilon
    clamped = performance < low or performance > high
    perf = min(max(performance, low), high)
    return 0.5 * math.log((1.0 + perf) / (1.0 - perf)), clamped
