"""Configuration management for AdaRank using OmegaConf."""

import math
import os
from pathlib import Path
from typing import Any, Dict, Optional
from omegaconf import DictConfig, OmegaConf


DEFAULT_CONFIG: Dict[str, Any] = {
    "training": {
        "metric": "MAP",
        "max_rounds": 50,
        "patience": 3,
        "tolerance": 0.003,
        "confidence_epsilon": 1e-6,
        "max_consecutive_selections": None,
        "features": None,
        "n_jobs": 1,
        "validation_split": 0.0,
        "random_state": 42,
    },
    "model": {
        "models_dir": "models",
    },
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        "file_logging": False,
        "log_file": "logs/adarank.log",
        "max_file_size": "10MB",
        "backup_count": 5,
    },
}


def _default_config_dir() -> Path:
    """Repository-level config directory, falling back to ./config."""
    repo_config = Path(__file__).resolve().parents[2] / "config"
    if repo_config.is_dir():
        return repo_config
    return Path("config")


def _coerce_env_value(value: str) -> Any:
    """Convert an environment string to bool, int or float where it parses as one."""
    if value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    try:
        return int(value)
    except ValueError:
        pass
    try:
        number = float(value)
    except ValueError:
        return value
    # 'nan' and 'inf' stay strings
    return number if math.isfinite(number) else value


class ConfigManager:
    """Configuration manager using OmegaConf for YAML-based configuration."""

    def __init__(self, config_dir: Optional[str] = None, environment: Optional[str] = None,
                 config_file: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_dir: Directory containing configuration files
            environment: Environment name (development, production, etc.)
            config_file: Explicit YAML file merged after the directory files
        """
        self.config_dir = Path(config_dir) if config_dir else _default_config_dir()
        self.environment = environment or os.getenv("ENVIRONMENT", "default")
        self.config_file = Path(config_file) if config_file else None
        self._config: Optional[DictConfig] = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from built-in defaults and YAML files."""
        config = OmegaConf.create(DEFAULT_CONFIG)

        for path in (
            self.config_dir / "default.yaml",
            self.config_dir / f"{self.environment}.yaml",
            self.config_dir / "user.yaml",
        ):
            if path.exists():
                config = OmegaConf.merge(config, OmegaConf.load(path))

        if self.config_file is not None:
            if not self.config_file.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_file}")
            config = OmegaConf.merge(config, OmegaConf.load(self.config_file))

        config = self._apply_env_overrides(config)

        self._config = config

    def _apply_env_overrides(self, config: DictConfig) -> DictConfig:
        """Apply environment variable overrides to configuration."""
        env_mappings = {
            "ADARANK_METRIC": "training.metric",
            "ADARANK_MAX_ROUNDS": "training.max_rounds",
            "ADARANK_PATIENCE": "training.patience",
            "ADARANK_TOLERANCE": "training.tolerance",
            "ADARANK_N_JOBS": "training.n_jobs",
            "ADARANK_LOG_LEVEL": "logging.level",
            "ADARANK_MODELS_DIR": "model.models_dir",
        }

        for env_var, config_path in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                OmegaConf.update(config, config_path, _coerce_env_value(env_value))

        return config

    @property
    def config(self) -> DictConfig:
        """Get the current configuration."""
        if self._config is None:
            self._load_config()
        return self._config

    def reload(self) -> None:
        """Reload configuration from files."""
        self._load_config()

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key.

        Args:
            key: Configuration key in dot notation (e.g., 'training.max_rounds')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        return OmegaConf.select(self.config, key, default=default)


# Global configuration manager instance
config_manager = ConfigManager()
config = config_manager.config


def get_training_config() -> Dict[str, Any]:
    """Get boosting engine configuration parameters."""
    return OmegaConf.to_container(config_manager.config.training, resolve=True)


def get_model_config() -> Dict[str, Any]:
    """Get model storage configuration parameters."""
    return OmegaConf.to_container(config_manager.config.model, resolve=True)


def get_logging_config() -> Dict[str, Any]:
    """Get logging configuration parameters."""
    return OmegaConf.to_container(config_manager.config.logging, resolve=True)
