"""AdaRank boosting engine.

AdaRank builds weak rankers repeatedly from reweighted training queries and
combines them linearly. Query weights follow the ensemble's current
per-query performance, so later rounds concentrate on poorly ranked queries
(Xu & Li, "AdaRank: A Boosting Algorithm for Information Retrieval", 2007).
"""

import logging
import math
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence, Set

import numpy as np

from .core import DataPoint, DataSet, Ensemble, Orientation, TrainingConfiguration
from .evaluators import Evaluator, get_evaluator
from .weak_ranker import (
    QueryFeatureCache, WeakRankerInducer, compute_confidence, resolve_features, stable_order
)
from ..utils.error_handling import (
    AdaRankError, ConvergenceFailure, DegenerateQueryWarning, EmptyDataSetError,
    IssueKind, IssueSeverity, IssueTracker, ModelNotTrainedError,
    NumericInstabilityError, TrainingIssue,
)


logger = logging.getLogger(__name__)


class TrainingState(Enum):
    """Lifecycle of a boosting run."""
    UNINITIALIZED = "uninitialized"
    TRAINING = "training"
    CONVERGED = "converged"
    MAX_ROUNDS_REACHED = "max_rounds_reached"
    STALLED = "stalled"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (TrainingState.UNINITIALIZED, TrainingState.TRAINING)


@dataclass
class RoundRecord:
    """Summary of one boosting round."""
    round: int
    feature_index: int
    orientation: Orientation
    confidence: float
    weighted_performance: float
    training_score: float
    validation_score: Optional[float]
    improvement: float
    status: str
    query_weights: np.ndarray

    def to_dict(self) -> Dict[str, Any]:
        return {
            "round": self.round,
            "feature_index": self.feature_index,
            "orientation": self.orientation.value,
            "confidence": self.confidence,
            "weighted_performance": self.weighted_performance,
            "training_score": self.training_score,
            "validation_score": self.validation_score,
            "improvement": self.improvement,
            "status": self.status,
        }


@dataclass
class BoostingState:
    """Mutable training state handed from one round to the next."""
    query_weights: np.ndarray
    ensemble: Ensemble
    train_scores: List[np.ndarray]
    validation_scores: Optional[List[np.ndarray]] = None
    status: TrainingState = TrainingState.UNINITIALIZED
    round: int = 0
    best_score: float = -math.inf
    best_size: int = 0
    previous_score: float = 0.0
    rounds_without_improvement: int = 0
    previous_feature: Optional[int] = None
    consecutive_selections: int = 0
    saturated: Set[int] = field(default_factory=set)
    clamp_hits: int = 0
    history: List[RoundRecord] = field(default_factory=list)


@dataclass
class FitResult:
    """Outcome of :meth:`AdaRank.fit`."""
    ensemble: Ensemble
    state: TrainingState
    rounds_completed: int
    best_round: int
    training_score: float
    validation_score: Optional[float]
    history: List[RoundRecord]
    degenerate_queries: List[Hashable]
    issues: List[TrainingIssue]

    @property
    def errors(self) -> List[AdaRankError]:
        """Recoverable errors recorded during training."""
        return [issue.error for issue in self.issues if issue.error is not None]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ensemble": [list(triple) for triple in self.ensemble.to_triples()],
            "state": self.state.value,
            "rounds_completed": self.rounds_completed,
            "best_round": self.best_round,
            "training_score": self.training_score,
            "validation_score": self.validation_score,
            "history": [record.to_dict() for record in self.history],
            "degenerate_queries": list(self.degenerate_queries),
            "issues": [issue.to_dict() for issue in self.issues],
        }


class AdaRank:
    """Boosting learner producing a linear ensemble of single-feature rankers."""

    def __init__(self, config: Optional[TrainingConfiguration] = None,
                 evaluator: Optional[Evaluator] = None):
        """Initialize the learner.

        Args:
            config: Engine parameters (defaults if None)
            evaluator: Metric to optimise; built from ``config.metric`` if None
        """
        self.config = config or TrainingConfiguration()
        self.evaluator = evaluator or get_evaluator(self.config.metric)
        self.ensemble: Optional[Ensemble] = None
        self.result: Optional[FitResult] = None

    @property
    def is_trained(self) -> bool:
        return self.ensemble is not None and len(self.ensemble) > 0

    def fit(self, dataset: DataSet, validation_dataset: Optional[DataSet] = None,
            should_stop: Optional[Callable[[], bool]] = None) -> FitResult:
        """Train the ensemble.

        Args:
            dataset: Training queries
            validation_dataset: Optional held-out queries used for model selection
            should_stop: Optional callback polled between rounds; training ends
                with ``TrainingState.CANCELLED`` once it returns True

        Returns:
            FitResult with the best-scoring ensemble prefix

        Raises:
            EmptyDataSetError: If the training or validation set has no queries
            NoFeaturesError: If no configured feature index occurs in the training data
        """
        if len(dataset) == 0:
            raise EmptyDataSetError("Training dataset has no queries")
        if validation_dataset is not None and len(validation_dataset) == 0:
            raise EmptyDataSetError("Validation dataset has no queries")
        features = resolve_features(dataset, self.config.features)

        logger.info("Training AdaRank (%s) on %d queries, %d documents, %d features",
                    self.evaluator, len(dataset), dataset.num_documents, len(features))

        tracker = IssueTracker()
        degenerate = dataset.degenerate_queries()
        if degenerate:
            warnings.warn(
                f"{len(degenerate)} training queries have no relevant document and score 0",
                DegenerateQueryWarning,
                stacklevel=2,
            )
            for query_id in degenerate:
                tracker.record(
                    IssueKind.DEGENERATE_QUERY,
                    f"Query {query_id!r} has no relevant document",
                    severity=IssueSeverity.LOW,
                    query_id=query_id,
                )

        inducer = WeakRankerInducer(dataset, self.evaluator, features, n_jobs=self.config.n_jobs)
        validation_cache = (
            QueryFeatureCache(validation_dataset, inducer.feature_indices)
            if validation_dataset is not None else None
        )

        state = BoostingState(
            query_weights=np.full(len(dataset), 1.0 / len(dataset)),
            ensemble=Ensemble(),
            train_scores=[np.zeros(m.shape[0]) for m in inducer.cache.matrices],
            validation_scores=(
                [np.zeros(m.shape[0]) for m in validation_cache.matrices]
                if validation_cache is not None else None
            ),
            status=TrainingState.TRAINING,
        )

        logger.debug(self._table_row("#Iter", "Feature", f"{self.evaluator}-T", "Improve-T",
                                     f"{self.evaluator}-V", "Improve-V", "Status"))

        while state.status is TrainingState.TRAINING:
            state = self._run_round(state, inducer, validation_cache, tracker)
            if state.status is TrainingState.TRAINING and should_stop is not None and should_stop():
                logger.info("Training cancelled after round %d", state.round)
                state.status = TrainingState.CANCELLED

        return self._finish(state, inducer, validation_cache, tracker, degenerate)

    def _run_round(self, state: BoostingState, inducer: WeakRankerInducer,
                   validation_cache: Optional[QueryFeatureCache],
                   tracker: IssueTracker) -> BoostingState:
        """Advance the state by one boosting round."""
        round_number = state.round + 1
        selection = inducer.induce(state.query_weights, state.saturated)
        if selection is None:
            logger.warning("Every feature is saturated; stopping at round %d", round_number)
            state.status = TrainingState.STALLED
            return state

        ranker = selection.ranker
        confidence, clamped = compute_confidence(selection.performance, self.config.confidence_epsilon)
        if clamped:
            state.clamp_hits += 1
            logger.debug("Round %d: weighted performance %.6f clamped", round_number, selection.performance)

        state.ensemble.append(ranker, confidence)
        state.round = round_number

        # Ensemble scores are linear in the members, so only the new term is added
        step = confidence * ranker.orientation.sign
        per_query = np.empty(len(inducer.cache))
        for q, scores in enumerate(state.train_scores):
            scores += step * inducer.cache.column(q, ranker.feature_index)
            per_query[q] = self.evaluator.evaluate(inducer.cache.ranked_labels(q, scores))

        weights = np.exp(-per_query)
        state.query_weights = weights / weights.sum()
        training_score = float(per_query.mean())

        validation_score = None
        if validation_cache is not None:
            for q, scores in enumerate(state.validation_scores):
                scores += step * validation_cache.column(q, ranker.feature_index)
            validation_score = float(np.mean([
                self.evaluator.evaluate(validation_cache.ranked_labels(q, scores))
                for q, scores in enumerate(state.validation_scores)
            ]))

        previous = state.history[-1] if state.history else None
        training_improvement = training_score - (previous.training_score if previous else 0.0)
        monitored = validation_score if validation_score is not None else training_score
        improvement = monitored - state.previous_score
        state.previous_score = monitored

        if monitored > state.best_score:
            state.best_score = monitored
            state.best_size = len(state.ensemble)
            state.rounds_without_improvement = 0
            status = "OK"
        else:
            state.rounds_without_improvement += 1
            status = "BAD"

        if ranker.feature_index == state.previous_feature:
            state.consecutive_selections += 1
        else:
            state.consecutive_selections = 1
        state.previous_feature = ranker.feature_index

        limit = self.config.max_consecutive_selections
        if limit is not None and state.consecutive_selections >= limit:
            state.saturated.add(ranker.feature_index)
            state.consecutive_selections = 0
            status = "SATURATED"
            tracker.record(
                IssueKind.FEATURE_SATURATED,
                f"Feature {ranker.feature_index} selected {limit} rounds in a row; excluded from now on",
                severity=IssueSeverity.LOW,
                round=round_number,
            )

        state.history.append(RoundRecord(
            round=round_number,
            feature_index=ranker.feature_index,
            orientation=ranker.orientation,
            confidence=confidence,
            weighted_performance=selection.performance,
            training_score=training_score,
            validation_score=validation_score,
            improvement=improvement,
            status=status,
            query_weights=state.query_weights.copy(),
        ))

        logger.debug(self._table_row(
            round_number, str(ranker), f"{training_score:.5f}", f"{training_improvement:.5f}",
            f"{validation_score:.5f}" if validation_score is not None else "-",
            f"{improvement:.5f}" if validation_score is not None else "-",
            status,
        ))

        if training_score >= self.evaluator.max_value - self.config.tolerance:
            state.status = TrainingState.CONVERGED
        elif state.rounds_without_improvement >= self.config.patience:
            state.status = TrainingState.STALLED
        elif round_number >= self.config.max_rounds:
            state.status = TrainingState.MAX_ROUNDS_REACHED

        return state

    def _finish(self, state: BoostingState, inducer: WeakRankerInducer,
                validation_cache: Optional[QueryFeatureCache], tracker: IssueTracker,
                degenerate: Sequence[Hashable]) -> FitResult:
        # Keep the best-scoring prefix; trailing rounds that did not help are dropped
        ensemble = state.ensemble.prefix(state.best_size)
        if len(ensemble) < len(state.ensemble):
            logger.info("Rolled back ensemble from %d to %d rounds",
                        len(state.ensemble), len(ensemble))

        if state.best_size == 1 and state.round > 1:
            tracker.record(
                IssueKind.CONVERGENCE_FAILURE,
                f"Metric never improved after round 1 ({state.round} rounds run)",
                round=state.round,
                error=ConvergenceFailure("Aggregate metric never improved after the first round"),
            )

        if state.clamp_hits > 1:
            tracker.record(
                IssueKind.NUMERIC_INSTABILITY,
                f"Confidence clamp hit in {state.clamp_hits} rounds",
                error=NumericInstabilityError(
                    "Weighted performance reached the clamp boundary repeatedly",
                    {"clamp_hits": state.clamp_hits},
                ),
            )

        training_score = self._aggregate(inducer.cache, ensemble)
        validation_score = (
            self._aggregate(validation_cache, ensemble) if validation_cache is not None else None
        )

        self.ensemble = ensemble
        self.result = FitResult(
            ensemble=ensemble,
            state=state.status,
            rounds_completed=state.round,
            best_round=state.best_size,
            training_score=training_score,
            validation_score=validation_score,
            history=state.history,
            degenerate_queries=list(degenerate),
            issues=list(tracker.issues),
        )

        logger.info("Training finished (%s) after %d rounds: %s-T=%.5f %s-V=%s, %d weak rankers",
                    state.status.value, state.round, self.evaluator, training_score, self.evaluator,
                    f"{validation_score:.5f}" if validation_score is not None else "n/a",
                    len(ensemble))
        return self.result

    def _aggregate(self, cache: QueryFeatureCache, ensemble: Ensemble) -> float:
        total = 0.0
        for q in range(len(cache)):
            scores = np.zeros(len(cache.labels[q]))
            for member in ensemble:
                scores += (member.confidence * member.ranker.orientation.sign
                           * cache.column(q, member.ranker.feature_index))
            total += self.evaluator.evaluate(cache.ranked_labels(q, scores))
        return total / len(cache)

    @staticmethod
    def _table_row(*cells: Any) -> str:
        return " | ".join(f"{str(cell):^9}" for cell in cells)

    def predict(self, datapoint: DataPoint) -> float:
        """Score one data point with the trained ensemble."""
        if not self.is_trained:
            raise ModelNotTrainedError("Model not trained. Call fit() first.")
        return self.ensemble.score(datapoint)

    def rank(self, documents: Sequence[DataPoint]) -> List[DataPoint]:
        """Order documents by descending score, ties kept in input order."""
        if not self.is_trained:
            raise ModelNotTrainedError("Model not trained. Call fit() first.")
        scores = np.array([self.ensemble.score(doc) for doc in documents], dtype=np.float64)
        return [documents[i] for i in stable_order(scores)]
