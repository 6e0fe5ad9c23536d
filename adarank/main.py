"""Command-line entry point for AdaRank."""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from omegaconf import OmegaConf

from .config.settings import ConfigManager
from .loaders.svmlight import load
from .models.adarank import AdaRank
from .models.core import TrainingConfiguration
from .models.evaluators import get_evaluator
from .services.prediction import PredictionPipeline
from .services.training_pipeline import ModelTrainingPipeline
from .utils.error_handling import AdaRankError
from .utils.logging import setup_logging


class AdaRankApp:
    """Runs training, evaluation and ranking from parsed command-line arguments."""

    def __init__(self, args: argparse.Namespace, log_level: Optional[str] = None):
        """
        Initialize the application.

        Args:
            args: Parsed command-line arguments
            log_level: Log level overriding the configuration
        """
        self.args = args

        config_dir = None
        config_file = None
        if args.config:
            config_path = Path(args.config)
            if config_path.is_dir():
                config_dir = str(config_path)
            else:
                config_file = str(config_path)

        self.config_manager = ConfigManager(
            config_dir=config_dir,
            environment=args.environment,
            config_file=config_file
        )
        self.config = self.config_manager.config

        logging_config = self.config.logging
        self.logger = setup_logging(
            level=log_level or logging_config.level,
            format_string=logging_config.format,
            file_logging=logging_config.file_logging,
            log_file=logging_config.log_file,
        )

        self.pipeline = ModelTrainingPipeline(models_dir=self.config.model.models_dir)

    def training_configuration(self) -> TrainingConfiguration:
        """Engine parameters from the configuration, overridden by flags."""
        values = OmegaConf.to_container(self.config.training, resolve=True)
        overrides = {
            "metric": self.args.metric,
            "max_rounds": self.args.max_rounds,
            "patience": self.args.patience,
            "tolerance": self.args.tolerance,
            "features": self.args.features,
            "validation_split": self.args.validation_split,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return TrainingConfiguration.from_dict(values)

    def train(self) -> AdaRank:
        config = self.training_configuration()
        train_data = load(self.args.train)
        validation_data = load(self.args.validate) if self.args.validate else None

        results = self.pipeline.train_model_with_validation(
            train_data, config, validation_data=validation_data
        )
        model = self.pipeline.current_model

        metrics = results["training_metrics"]
        print(f"Training finished: {metrics['state']} after {metrics['rounds_completed']} rounds")
        print(f"{model.evaluator} on training data: {metrics[str(model.evaluator)]:.5f}")
        if results["validation_metrics"]:
            print(f"{model.evaluator} on validation data: "
                  f"{results['validation_metrics'][str(model.evaluator)]:.5f}")
        print("Ensemble (feature, orientation, confidence):")
        for feature_index, orientation, confidence in results["ensemble"]:
            print(f"  {feature_index}\t{orientation}\t{confidence:.6f}")
        for issue in results["issues"]:
            if issue["kind"] != "degenerate_query":
                print(f"Warning: {issue['message']}")

        if self.args.save_model:
            path = self.pipeline.save_model_version(model, self.args.save_model)
            print(f"Model saved to {path}")
        return model

    def evaluate(self, model: AdaRank) -> float:
        evaluator = get_evaluator(self.args.metric) if self.args.metric else model.evaluator
        score = PredictionPipeline(model.ensemble).evaluate(load(self.args.test), evaluator)
        print(f"{evaluator} on test data: {score:.5f}")
        return score

    def rank(self, model: AdaRank) -> None:
        dataset = load(self.args.rank)
        pipeline = PredictionPipeline(model.ensemble)
        for query in dataset:
            for position, doc in enumerate(pipeline.rank_query(query), start=1):
                line = f"{query.query_id}\t{position}\t{model.predict(doc):.6f}"
                if doc.description:
                    line += f"\t{doc.description}"
                print(line)

    def run(self) -> int:
        """
        Run the requested actions.

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        try:
            if self.args.load_model:
                model, _ = self.pipeline.load_model_version(self.args.load_model)
                self.logger.info("Using stored model '%s'", self.args.load_model)
            else:
                model = self.train()

            if self.args.test:
                self.evaluate(model)
            if self.args.rank:
                self.rank(model)
            return 0

        except (AdaRankError, OSError, ValueError) as e:
            self.logger.error("%s: %s", type(e).__name__, e)
            print(f"Error: {e}", file=sys.stderr)
            return 1


def _feature_list(value: str) -> List[int]:
    try:
        features = [int(item) for item in value.split(",") if item.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma-separated feature indices, got {value!r}") from None
    if not features or any(index < 1 for index in features):
        raise argparse.ArgumentTypeError("feature indices must be positive integers")
    return features


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the command-line argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="adarank",
        description="AdaRank - boosting a linear ranking model from labeled query-document data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --train train.txt                          # Train with default configuration
  %(prog)s --train train.txt --validate vali.txt      # Select the ensemble on a validation set
  %(prog)s --train train.txt --metric NDCG@10         # Optimise NDCG at cutoff 10
  %(prog)s --train train.txt --save-model fold1       # Store the ensemble as version 'fold1'
  %(prog)s --load-model fold1 --test test.txt         # Evaluate a stored ensemble
  %(prog)s --load-model fold1 --rank test.txt         # Print rankings for every query
        """
    )

    # Data
    parser.add_argument("--train", "-t", type=str, help="Training data file (SVM-Light format)")
    parser.add_argument("--validate", type=str, help="Validation data file used for model selection")
    parser.add_argument("--test", type=str, help="Test data file evaluated after training or loading")
    parser.add_argument("--rank", type=str, help="Data file whose queries are ranked and printed")

    # Engine parameters
    parser.add_argument("--metric", "-m", type=str, help="Metric to optimise, e.g. MAP, NDCG@10, P@5")
    parser.add_argument("--max-rounds", type=int, help="Maximum number of boosting rounds")
    parser.add_argument("--patience", type=int, help="Rounds without improvement before stopping")
    parser.add_argument("--tolerance", type=float, help="Convergence tolerance below the metric maximum")
    parser.add_argument("--features", type=_feature_list,
                        help="Comma-separated feature indices to consider (default: all)")
    parser.add_argument("--validation-split", type=float,
                        help="Fraction of training queries held out when --validate is not given")

    # Model storage
    parser.add_argument("--save-model", type=str, help="Save the trained ensemble under this version name")
    parser.add_argument("--load-model", type=str, help="Load a stored ensemble instead of training")

    # Configuration options
    parser.add_argument(
        "--config", "-c",
        type=str,
        help="Path to configuration file or directory (default: ./config)"
    )

    parser.add_argument(
        "--environment", "--env", "-e",
        type=str,
        help="Environment name (development, production, etc.)"
    )

    # Logging options
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set logging level (overrides configuration)"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging (equivalent to --log-level DEBUG)"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-error output (equivalent to --log-level ERROR)"
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main application entry point with CLI argument parsing.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if not args.train and not args.load_model:
        parser.error("one of --train or --load-model is required")
    if args.train and args.load_model:
        parser.error("--train and --load-model are mutually exclusive")

    log_level = None
    if args.verbose:
        log_level = "DEBUG"
    elif args.quiet:
        log_level = "ERROR"
    elif args.log_level:
        log_level = args.log_level

    try:
        app = AdaRankApp(args, log_level=log_level)
        return app.run()

    except KeyboardInterrupt:
        print("\nApplication interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
