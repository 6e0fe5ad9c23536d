"""Core data models for AdaRank."""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Hashable, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class DataPoint:
    """One labeled query-document feature vector.

    Feature indices start at 1, as in the SVM-Light format. Indices absent
    from ``features`` are read as 0.0.
    """
    label: int
    query_id: Hashable
    features: Mapping[int, float]
    description: Optional[str] = None

    # Feature maps are mutable dicts; compare by value, never hash
    __hash__ = None

    def __post_init__(self):
        if isinstance(self.label, bool) or not isinstance(self.label, (int, np.integer)):
            raise ValueError(f"Label must be a non-negative integer, got {self.label!r}")
        if self.label < 0:
            raise ValueError(f"Label must be a non-negative integer, got {self.label!r}")
        for index in self.features:
            if isinstance(index, bool) or not isinstance(index, (int, np.integer)) or index < 1:
                raise ValueError(f"Feature index must be a positive integer, got {index!r}")
        object.__setattr__(self, "label", int(self.label))
        object.__setattr__(
            self, "features",
            {int(index): float(value) for index, value in sorted(self.features.items())}
        )

    def get_feature(self, index: int) -> float:
        return self.features.get(index, 0.0)

    @property
    def is_relevant(self) -> bool:
        return self.label > 0


@dataclass(frozen=True)
class Query:
    """A query id and its documents, in their original order."""
    query_id: Hashable
    documents: Tuple[DataPoint, ...]

    __hash__ = None

    def __post_init__(self):
        object.__setattr__(self, "documents", tuple(self.documents))
        for doc in self.documents:
            if doc.query_id != self.query_id:
                raise ValueError(
                    f"DataPoint with query id {doc.query_id!r} cannot belong to query {self.query_id!r}"
                )

    def __len__(self) -> int:
        return len(self.documents)

    def __iter__(self) -> Iterator[DataPoint]:
        return iter(self.documents)

    @property
    def labels(self) -> np.ndarray:
        return np.array([doc.label for doc in self.documents], dtype=np.int64)

    @property
    def has_relevant(self) -> bool:
        return any(doc.label > 0 for doc in self.documents)

    def feature_matrix(self, feature_indices: Sequence[int]) -> np.ndarray:
        """Dense ``(num_documents, len(feature_indices))`` matrix, 0.0 for missing values."""
        matrix = np.zeros((len(self.documents), len(feature_indices)), dtype=np.float64)
        column = {index: j for j, index in enumerate(feature_indices)}
        for i, doc in enumerate(self.documents):
            for index, value in doc.features.items():
                j = column.get(index)
                if j is not None:
                    matrix[i, j] = value
        return matrix


class DataSet:
    """Collection of queries with stable per-query document order.

    A DataSet is built once (usually by the loader) and never mutated by
    training; weights and rankers live in separate structures.
    """

    def __init__(self, queries: Iterable[Query] = ()):
        self._queries: List[Query] = list(queries)
        self._index: Dict[Hashable, int] = {}
        for position, query in enumerate(self._queries):
            if query.query_id in self._index:
                raise ValueError(f"Duplicate query id: {query.query_id!r}")
            self._index[query.query_id] = position

    @classmethod
    def from_datapoints(cls, datapoints: Iterable[DataPoint]) -> "DataSet":
        """Group data points by query id.

        Queries keep the order of their first appearance and documents keep
        their input order within each query.
        """
        grouped: Dict[Hashable, List[DataPoint]] = {}
        for dp in datapoints:
            grouped.setdefault(dp.query_id, []).append(dp)
        return cls(Query(query_id, tuple(docs)) for query_id, docs in grouped.items())

    def __len__(self) -> int:
        return len(self._queries)

    def __iter__(self) -> Iterator[Query]:
        return iter(self._queries)

    def __getitem__(self, position: int) -> Query:
        return self._queries[position]

    def __repr__(self) -> str:
        return f"DataSet(queries={len(self)}, documents={self.num_documents})"

    @property
    def is_empty(self) -> bool:
        return not self._queries

    @property
    def query_ids(self) -> List[Hashable]:
        return [query.query_id for query in self._queries]

    @property
    def num_documents(self) -> int:
        return sum(len(query) for query in self._queries)

    def get_query(self, query_id: Hashable) -> Query:
        try:
            return self._queries[self._index[query_id]]
        except KeyError:
            raise KeyError(f"Unknown query id: {query_id!r}") from None

    def datapoints(self) -> Iterator[DataPoint]:
        for query in self._queries:
            yield from query.documents

    def feature_indices(self) -> List[int]:
        """Sorted union of the feature indices present in the corpus."""
        indices = set()
        for dp in self.datapoints():
            indices.update(dp.features)
        return sorted(indices)

    def degenerate_queries(self) -> List[Hashable]:
        """Ids of queries with no relevant document."""
        return [query.query_id for query in self._queries if not query.has_relevant]

    def subset(self, query_ids: Iterable[Hashable]) -> "DataSet":
        """New DataSet holding the given queries in the given order."""
        return DataSet(self.get_query(query_id) for query_id in query_ids)


class Orientation(Enum):
    """Direction in which a weak ranker orders documents by feature value."""
    ASCENDING = "ascending"
    DESCENDING = "descending"

    @property
    def sign(self) -> float:
        return 1.0 if self is Orientation.DESCENDING else -1.0


@dataclass(frozen=True)
class WeakRanker:
    """Ranks documents by the raw value of a single feature."""
    feature_index: int
    orientation: Orientation = Orientation.DESCENDING

    def score(self, datapoint: DataPoint) -> float:
        return self.orientation.sign * datapoint.get_feature(self.feature_index)

    def __str__(self) -> str:
        arrow = "+" if self.orientation is Orientation.DESCENDING else "-"
        return f"{arrow}f{self.feature_index}"


@dataclass(frozen=True)
class EnsembleMember:
    """A weak ranker and its confidence (amount of say)."""
    ranker: WeakRanker
    confidence: float


class Ensemble:
    """Ordered sequence of weak rankers combined linearly by confidence."""

    def __init__(self, members: Iterable[EnsembleMember] = ()):
        self._members: List[EnsembleMember] = list(members)

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self) -> Iterator[EnsembleMember]:
        return iter(self._members)

    def __getitem__(self, position: int) -> EnsembleMember:
        return self._members[position]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ensemble):
            return NotImplemented
        return self._members == other._members

    def __repr__(self) -> str:
        body = ", ".join(f"{m.ranker}:{m.confidence:.5f}" for m in self._members)
        return f"Ensemble([{body}])"

    def append(self, ranker: WeakRanker, confidence: float) -> EnsembleMember:
        member = EnsembleMember(ranker, float(confidence))
        self._members.append(member)
        return member

    def prefix(self, size: int) -> "Ensemble":
        """A new ensemble with the first ``size`` members."""
        return Ensemble(self._members[:size])

    def score(self, datapoint: DataPoint) -> float:
        total = 0.0
        for member in self._members:
            total += member.confidence * member.ranker.score(datapoint)
        return total

    def feature_indices(self) -> List[int]:
        return sorted({member.ranker.feature_index for member in self._members})

    def to_triples(self) -> List[Tuple[int, str, float]]:
        """Plain ``(feature_index, orientation, confidence)`` triples."""
        return [
            (m.ranker.feature_index, m.ranker.orientation.value, m.confidence)
            for m in self._members
        ]

    @classmethod
    def from_triples(cls, triples: Iterable[Sequence[Any]]) -> "Ensemble":
        ensemble = cls()
        for feature_index, orientation, confidence in triples:
            ensemble.append(WeakRanker(int(feature_index), Orientation(orientation)), float(confidence))
        return ensemble


@dataclass
class TrainingConfiguration:
    """Configuration parameters for the boosting engine."""
    metric: str = "MAP"
    max_rounds: int = 50
    patience: int = 3
    tolerance: float = 0.003
    confidence_epsilon: float = 1e-6
    max_consecutive_selections: Optional[int] = None
    features: Optional[List[int]] = None
    n_jobs: int = 1
    validation_split: float = 0.0
    random_state: int = 42

    def __post_init__(self):
        if self.max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        if self.patience < 1:
            raise ValueError("patience must be at least 1")
        if self.tolerance < 0:
            raise ValueError("tolerance must be non-negative")
        if not 0 < self.confidence_epsilon < 1:
            raise ValueError("confidence_epsilon must be in (0, 1)")
        if self.max_consecutive_selections is not None and self.max_consecutive_selections < 1:
            raise ValueError("max_consecutive_selections must be at least 1")
        if self.n_jobs < 1:
            raise ValueError("n_jobs must be at least 1")
        if not 0 <= self.validation_split < 1:
            raise ValueError("validation_split must be in [0, 1)")
        if self.features is not None:
            self.features = [int(index) for index in self.features]

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "TrainingConfiguration":
        """Build a configuration from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in values.items() if key in known})

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
