"""AdaRank learning-to-rank: boosting a linear ensemble of single-feature rankers."""

from .models.adarank import AdaRank, FitResult, TrainingState
from .models.core import DataPoint, DataSet, Ensemble, Orientation, Query, TrainingConfiguration, WeakRanker
from .models.evaluators import MAP, NDCG, Precision, ReciprocalRank, get_evaluator

__version__ = "0.1.0"

__all__ = [
    "AdaRank",
    "FitResult",
    "TrainingState",
    "DataPoint",
    "DataSet",
    "Ensemble",
    "Orientation",
    "Query",
    "TrainingConfiguration",
    "WeakRanker",
    "MAP",
    "NDCG",
    "Precision",
    "ReciprocalRank",
    "get_evaluator",
]
