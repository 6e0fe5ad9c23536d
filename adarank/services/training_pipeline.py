"""Training pipeline and model version storage for AdaRank ensembles."""

import logging
import json
import shutil
from collections import Counter
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
from datetime import datetime
from sklearn.model_selection import train_test_split

from ..config.settings import get_model_config
from ..models.adarank import AdaRank
from ..models.core import DataSet, Ensemble, TrainingConfiguration
from ..models.evaluators import get_evaluator
from ..utils.error_handling import EmptyDataSetError, ModelNotTrainedError
from .prediction import PredictionPipeline


logger = logging.getLogger(__name__)

MODEL_FILE = "ensemble.json"
METADATA_FILE = "metadata.json"


class ModelTrainingPipeline:
    """Pipeline for training and managing AdaRank model versions."""

    def __init__(self, models_dir: Optional[str] = None, backup_dir: Optional[str] = None):
        """Initialize the training pipeline.

        Args:
            models_dir: Directory to store trained models (configured default if None)
            backup_dir: Directory to store model backups (``<models_dir>/backups`` if None)
        """
        self.models_dir = Path(models_dir or get_model_config().get("models_dir", "models"))
        self.backup_dir = Path(backup_dir) if backup_dir else self.models_dir / "backups"

        self.models_dir.mkdir(parents=True, exist_ok=True)
        self.backup_dir.mkdir(parents=True, exist_ok=True)

        self.current_model: Optional[AdaRank] = None

        logger.info("ModelTrainingPipeline initialized (models_dir=%s)", self.models_dir)

    def validate_training_data(self, dataset: DataSet) -> Dict[str, Any]:
        """Check a dataset before training and collect statistics.

        Args:
            dataset: Training queries

        Returns:
            Dictionary with ``is_valid``, ``error`` and ``statistics``
        """
        if dataset.is_empty:
            return {
                'is_valid': False,
                'error': 'Training data is empty',
                'statistics': {}
            }

        logger.info("Validating %d training queries", len(dataset))

        labels = Counter(dp.label for dp in dataset.datapoints())
        features = dataset.feature_indices()
        degenerate = dataset.degenerate_queries()
        sizes = [len(query) for query in dataset]

        results = {
            'is_valid': True,
            'error': None,
            'statistics': {
                'total_queries': len(dataset),
                'total_documents': dataset.num_documents,
                'num_features': len(features),
                'max_feature_index': features[-1] if features else None,
                'relevant_documents': sum(count for label, count in labels.items() if label > 0),
                'label_distribution': {str(label): labels[label] for label in sorted(labels)},
                'degenerate_queries': len(degenerate),
                'min_documents_per_query': min(sizes),
                'max_documents_per_query': max(sizes),
            }
        }

        if not features:
            results['is_valid'] = False
            results['error'] = "Data points carry no feature indices"
        elif len(degenerate) == len(dataset):
            results['is_valid'] = False
            results['error'] = "No query has a relevant document"

        if degenerate:
            results['degenerate_query_ids'] = degenerate[:10]

        logger.info("Validation completed: %d queries, %d documents, %d features, %d degenerate",
                    len(dataset), dataset.num_documents, len(features), len(degenerate))
        return results

    def prepare_training_data(self, dataset: DataSet,
                              validation_split: float = 0.2,
                              random_state: int = 42) -> Tuple[DataSet, Optional[DataSet]]:
        """Split a dataset into training and validation queries.

        Whole queries are assigned to one side. Both sides keep the original
        query order.

        Args:
            dataset: Queries to split
            validation_split: Fraction of queries held out for validation
            random_state: Random seed for reproducibility

        Returns:
            Tuple of (train_data, validation_data); validation_data is None
            when no split is requested or fewer than two queries exist
        """
        if dataset.is_empty:
            raise EmptyDataSetError("Training data cannot be empty")

        validation_results = self.validate_training_data(dataset)
        if not validation_results['is_valid']:
            raise ValueError(f"Training data validation failed: {validation_results['error']}")

        if validation_split <= 0 or len(dataset) < 2:
            if validation_split > 0:
                logger.warning("Too few queries to hold out a validation set; training on all data")
            return dataset, None

        query_ids = dataset.query_ids
        position = {query_id: i for i, query_id in enumerate(query_ids)}
        train_ids, validation_ids = train_test_split(
            query_ids,
            test_size=validation_split,
            random_state=random_state
        )
        train_data = dataset.subset(sorted(train_ids, key=position.__getitem__))
        validation_data = dataset.subset(sorted(validation_ids, key=position.__getitem__))

        logger.info("Data split: %d train, %d validation queries", len(train_data), len(validation_data))
        return train_data, validation_data

    def train_model_with_validation(self, train_data: DataSet,
                                    config: Optional[TrainingConfiguration] = None,
                                    validation_data: Optional[DataSet] = None,
                                    test_data: Optional[DataSet] = None,
                                    should_stop: Optional[Callable[[], bool]] = None) -> Dict[str, Any]:
        """Train an AdaRank model and evaluate it.

        When no validation set is given and ``config.validation_split`` is
        positive, the validation set is held out from ``train_data``.

        Args:
            train_data: Training queries
            config: Engine configuration (defaults if None)
            validation_data: Optional validation queries
            test_data: Optional test queries evaluated after training
            should_stop: Optional cancellation callback

        Returns:
            Dictionary containing training results and metrics
        """
        logger.info("Starting model training with validation")
        config = config or TrainingConfiguration()

        if validation_data is None and config.validation_split > 0:
            train_data, validation_data = self.prepare_training_data(
                train_data, config.validation_split, config.random_state
            )

        model = AdaRank(config)
        fit_result = model.fit(train_data, validation_data, should_stop=should_stop)

        test_metrics = {}
        if test_data is not None and not test_data.is_empty:
            pipeline = PredictionPipeline(model.ensemble)
            test_metrics[str(model.evaluator)] = pipeline.evaluate(test_data, model.evaluator)

        results = {
            'training_metrics': {
                str(model.evaluator): fit_result.training_score,
                'rounds_completed': fit_result.rounds_completed,
                'best_round': fit_result.best_round,
                'state': fit_result.state.value,
            },
            'validation_metrics': (
                {str(model.evaluator): fit_result.validation_score}
                if fit_result.validation_score is not None else {}
            ),
            'test_metrics': test_metrics,
            'ensemble': [list(triple) for triple in model.ensemble.to_triples()],
            'issues': [issue.to_dict() for issue in fit_result.issues],
            'model_config': config.to_dict(),
            'data_statistics': {
                'train_queries': len(train_data),
                'validation_queries': len(validation_data) if validation_data is not None else 0,
                'test_queries': len(test_data) if test_data is not None else 0,
            },
            'timestamp': datetime.now().isoformat()
        }

        self.current_model = model

        logger.info("Model training completed successfully")
        return results

    def save_model_version(self, model: AdaRank,
                           version_name: str,
                           metadata: Optional[Dict[str, Any]] = None) -> str:
        """Save a model version with metadata.

        Args:
            model: Trained AdaRank model to save
            version_name: Name/identifier for this model version
            metadata: Optional metadata to store with the model

        Returns:
            Path to the saved ensemble file
        """
        if not model.is_trained:
            raise ModelNotTrainedError("Cannot save untrained model")

        version_dir = self.models_dir / version_name
        version_dir.mkdir(parents=True, exist_ok=True)

        model_path = version_dir / MODEL_FILE
        with open(model_path, 'w') as f:
            json.dump({
                'metric': str(model.evaluator),
                'ensemble': [list(triple) for triple in model.ensemble.to_triples()],
            }, f, indent=2)

        metadata = dict(metadata or {})
        metadata.update({
            'version_name': version_name,
            'saved_at': datetime.now().isoformat(),
            'model_type': 'AdaRank',
            'metric': str(model.evaluator),
            'num_rankers': len(model.ensemble),
            'features': model.ensemble.feature_indices(),
        })
        if model.result is not None:
            metadata.update({
                'state': model.result.state.value,
                'rounds_completed': model.result.rounds_completed,
                'training_score': model.result.training_score,
                'validation_score': model.result.validation_score,
            })

        with open(version_dir / METADATA_FILE, 'w') as f:
            json.dump(metadata, f, indent=2)

        logger.info("Model version '%s' saved to %s", version_name, version_dir)
        return str(model_path)

    def load_model_version(self, version_name: str) -> Tuple[AdaRank, Dict[str, Any]]:
        """Load a specific model version.

        Args:
            version_name: Name/identifier of the model version to load

        Returns:
            Tuple of (loaded_model, metadata)
        """
        version_dir = self.models_dir / version_name

        if not version_dir.exists():
            raise FileNotFoundError(f"Model version '{version_name}' not found")

        model_path = version_dir / MODEL_FILE
        if not model_path.exists():
            raise FileNotFoundError(f"Model file not found in version '{version_name}'")

        with open(model_path, 'r') as f:
            payload = json.load(f)

        metric = payload.get('metric', 'MAP')
        model = AdaRank(TrainingConfiguration(metric=metric), get_evaluator(metric))
        model.ensemble = Ensemble.from_triples(payload['ensemble'])

        metadata = {}
        metadata_path = version_dir / METADATA_FILE
        if metadata_path.exists():
            with open(metadata_path, 'r') as f:
                metadata = json.load(f)

        logger.info("Model version '%s' loaded successfully (%d weak rankers)",
                    version_name, len(model.ensemble))
        return model, metadata

    def list_model_versions(self) -> List[Dict[str, Any]]:
        """List all available model versions, newest first."""
        versions = []

        if not self.models_dir.exists():
            return versions

        for version_dir in self.models_dir.iterdir():
            if not version_dir.is_dir() or version_dir == self.backup_dir:
                continue
            metadata_path = version_dir / METADATA_FILE
            model_path = version_dir / MODEL_FILE

            version_info = {
                'version_name': version_dir.name,
                'has_model': model_path.exists(),
                'has_metadata': metadata_path.exists(),
                'created_at': datetime.fromtimestamp(version_dir.stat().st_ctime).isoformat()
            }

            if metadata_path.exists():
                try:
                    with open(metadata_path, 'r') as f:
                        version_info.update(json.load(f))
                except (OSError, json.JSONDecodeError) as e:
                    logger.warning("Failed to load metadata for version %s: %s",
                                   version_dir.name, e)

            versions.append(version_info)

        versions.sort(key=lambda x: x.get('saved_at', x['created_at']), reverse=True)

        return versions

    def backup_model_version(self, version_name: str) -> str:
        """Copy a model version into the backup directory.

        Returns:
            Path to the backup directory
        """
        version_dir = self.models_dir / version_name

        if not version_dir.exists():
            raise FileNotFoundError(f"Model version '{version_name}' not found")

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        backup_path = self.backup_dir / f"{version_name}_{timestamp}"
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        shutil.copytree(version_dir, backup_path)

        logger.info("Model version '%s' backed up to %s", version_name, backup_path)
        return str(backup_path)

    def delete_model_version(self, version_name: str, create_backup: bool = True) -> None:
        """Delete a model version.

        Args:
            version_name: Name of the version to delete
            create_backup: Whether to create a backup before deletion
        """
        version_dir = self.models_dir / version_name

        if not version_dir.exists():
            raise FileNotFoundError(f"Model version '{version_name}' not found")

        if create_backup:
            self.backup_model_version(version_name)

        shutil.rmtree(version_dir)

        logger.info("Model version '%s' deleted", version_name)
