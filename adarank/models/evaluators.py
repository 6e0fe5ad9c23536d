"""Ranking quality metrics.

Every evaluator works on a ranked list of relevance labels alone, so the same
instance scores a weak ranker's ordering, an ensemble's ordering or a
ground-truth ordering. Evaluators are pure: the result depends only on the
labels and the cutoff.
"""

import re
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Sequence

import numpy as np


class Evaluator(ABC):
    """Base class for per-query ranking metrics with values in [0, 1]."""

    name: str = "metric"
    max_value: float = 1.0

    def __init__(self, k: Optional[int] = None):
        if k is not None and k < 1:
            raise ValueError(f"Cutoff must be a positive integer, got {k}")
        self.k = k

    def __repr__(self) -> str:
        return f"{type(self).__name__}(k={self.k})"

    def __str__(self) -> str:
        return self.name if self.k is None else f"{self.name}@{self.k}"

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.k == other.k

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.k))

    def _cutoff(self, length: int, cutoff: Optional[int]) -> int:
        k = cutoff if cutoff is not None else self.k
        if k is None:
            return length
        if k < 1:
            raise ValueError(f"Cutoff must be a positive integer, got {k}")
        return k

    def is_degenerate(self, ranked_labels: Sequence[int]) -> bool:
        """True when the list holds no relevant document.

        Such a query scores 0.0; callers may exclude it from averages.
        """
        return not any(label > 0 for label in ranked_labels)

    def evaluate(self, ranked_labels: Sequence[int], cutoff: Optional[int] = None) -> float:
        """Score one query's ranking.

        Args:
            ranked_labels: Relevance labels in ranked order (best first)
            cutoff: Optional rank cutoff overriding the evaluator's own

        Returns:
            Metric value in [0, 1]
        """
        labels = np.asarray(ranked_labels, dtype=np.float64)
        k = self._cutoff(labels.size, cutoff)
        if labels.size == 0 or self.is_degenerate(labels):
            return 0.0
        return float(self._evaluate(labels, k))

    @abstractmethod
    def _evaluate(self, labels: np.ndarray, k: int) -> float:
        """Score a non-empty, non-degenerate label array at cutoff ``k``.

        ``k`` may exceed the number of labels.
        """

    def evaluate_rankings(self, rankings: Iterable[Sequence[int]],
                          exclude_degenerate: bool = False) -> float:
        """Mean metric over several queries' rankings.

        Degenerate queries count as 0.0 unless ``exclude_degenerate`` drops
        them from the denominator.
        """
        total = 0.0
        count = 0
        for labels in rankings:
            if exclude_degenerate and self.is_degenerate(labels):
                continue
            total += self.evaluate(labels)
            count += 1
        return total / count if count else 0.0


class MAP(Evaluator):
    """Average precision of a single query; the caller averages over queries.

    Precision is summed at each relevant position within the cutoff and
    divided by the number of relevant documents in the whole list.
    """

    name = "MAP"

    def _evaluate(self, labels: np.ndarray, k: int) -> float:
        total_relevant = int(np.count_nonzero(labels > 0))
        hits = 0
        precision_sum = 0.0
        for position in range(min(k, labels.size)):
            if labels[position] > 0:
                hits += 1
                precision_sum += hits / (position + 1)
        return precision_sum / total_relevant


class NDCG(Evaluator):
    """Normalized discounted cumulative gain with ``2^label - 1`` gains."""

    name = "NDCG"

    @staticmethod
    def _dcg(labels: np.ndarray, k: int) -> float:
        top = labels[:k]
        gains = np.power(2.0, top) - 1.0
        discounts = np.log2(np.arange(2, top.size + 2, dtype=np.float64))
        return float(np.sum(gains / discounts))

    def _evaluate(self, labels: np.ndarray, k: int) -> float:
        ideal = self._dcg(np.sort(labels)[::-1], k)
        if ideal == 0.0:
            return 0.0
        return self._dcg(labels, k) / ideal


class Precision(Evaluator):
    """Fraction of relevant documents among the top k.

    Lists shorter than k are still divided by k.
    """

    name = "P"

    def _evaluate(self, labels: np.ndarray, k: int) -> float:
        return float(np.count_nonzero(labels[:k] > 0)) / k


class ReciprocalRank(Evaluator):
    """Inverse rank of the first relevant document within the cutoff."""

    name = "RR"

    def _evaluate(self, labels: np.ndarray, k: int) -> float:
        for position in range(min(k, labels.size)):
            if labels[position] > 0:
                return 1.0 / (position + 1)
        return 0.0


EVALUATORS = {
    "MAP": MAP,
    "NDCG": NDCG,
    "P": Precision,
    "RR": ReciprocalRank,
    "MRR": ReciprocalRank,
}

_METRIC_PATTERN = re.compile(r"^\s*([A-Za-z]+)\s*(?:@\s*(\d+))?\s*$")


def get_evaluator(name: str) -> Evaluator:
    """Build an evaluator from a name such as ``MAP``, ``NDCG@10`` or ``P@5``.

    Args:
        name: Metric name with an optional ``@k`` cutoff

    Returns:
        Evaluator instance

    Raises:
        ValueError: If the metric is unknown or malformed
    """
    match = _METRIC_PATTERN.match(name or "")
    if not match:
        raise ValueError(f"Malformed metric name: {name!r}")
    key = match.group(1).upper()
    if key not in EVALUATORS:
        raise ValueError(f"Unknown metric {match.group(1)!r}; expected one of {sorted(EVALUATORS)}")
    k = int(match.group(2)) if match.group(2) else None
    return EVALUATORS[key](k)
