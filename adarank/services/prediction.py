"""Scoring and ranking with a trained AdaRank ensemble."""

import logging
from typing import Dict, Hashable, List, Optional, Sequence

import numpy as np

from ..models.core import DataPoint, DataSet, Ensemble, Query
from ..models.evaluators import Evaluator, MAP
from ..models.weak_ranker import stable_order
from ..utils.error_handling import ModelNotTrainedError


logger = logging.getLogger(__name__)


def predict(ensemble: Ensemble, datapoint: DataPoint) -> float:
    """Ensemble score ``sum(confidence * sign * feature value)`` of one data point."""
    return ensemble.score(datapoint)


def rank(ensemble: Ensemble, documents: Sequence[DataPoint]) -> List[DataPoint]:
    """Order documents by descending ensemble score.

    Equal scores keep their relative input order.
    """
    scores = np.array([ensemble.score(doc) for doc in documents], dtype=np.float64)
    return [documents[i] for i in stable_order(scores)]


class PredictionPipeline:
    """Applies a trained ensemble to queries and whole datasets."""

    def __init__(self, ensemble: Optional[Ensemble] = None):
        self.ensemble = ensemble

    def _require_ensemble(self) -> Ensemble:
        if self.ensemble is None or len(self.ensemble) == 0:
            raise ModelNotTrainedError("No trained ensemble loaded")
        return self.ensemble

    def score_query(self, query: Query) -> np.ndarray:
        ensemble = self._require_ensemble()
        return np.array([ensemble.score(doc) for doc in query], dtype=np.float64)

    def rank_query(self, query: Query) -> List[DataPoint]:
        """Documents of ``query`` ordered best first."""
        return rank(self._require_ensemble(), query.documents)

    def rank_dataset(self, dataset: DataSet) -> Dict[Hashable, List[DataPoint]]:
        """Rank every query of ``dataset``, keyed by query id in dataset order."""
        rankings = {query.query_id: self.rank_query(query) for query in dataset}
        logger.debug("Ranked %d queries", len(rankings))
        return rankings

    def evaluate(self, dataset: DataSet, evaluator: Optional[Evaluator] = None) -> float:
        """Mean per-query metric of the ensemble's rankings over ``dataset``.

        Args:
            dataset: Queries to rank
            evaluator: Metric to average (MAP if None)

        Returns:
            Mean metric value, 0.0 for an empty dataset
        """
        evaluator = evaluator or MAP()
        ranked = (
            [doc.label for doc in documents]
            for documents in self.rank_dataset(dataset).values()
        )
        score = evaluator.evaluate_rankings(ranked)
        logger.info("%s on %d queries: %.5f", evaluator, len(dataset), score)
        return score
