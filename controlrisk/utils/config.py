"""Configuration management for Control Risk Analytics."""

from pathlib import Path

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from controlrisk.utils.error_handling import ConfigurationError


class AppConfig(BaseSettings):
    """Application configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: str = Field(default="logs", description="Directory for log files")

    # Bayesian engine
    default_industry: str = Field(
        default="default", description="Industry prior used when none is given"
    )
    max_rejection_attempts: int = Field(
        default=10000,
        ge=1,
        description="Maximum rejection-sampling attempts per Beta draw",
    )

    # Reproducibility
    random_seed: int | None = Field(
        default=None, description="Seed for the injectable random source"
    )

    # Statistical toolkit
    bootstrap_iterations: int = Field(default=1000, ge=1)
    bootstrap_confidence_level: float = Field(default=0.95, gt=0.0, lt=1.0)
    logistic_learning_rate: float = Field(default=0.1, gt=0.0)
    logistic_iterations: int = Field(default=1000, ge=1)

    # Monte Carlo simulation
    monte_carlo_iterations: int = Field(default=10000, ge=1)
    monte_carlo_volatility: float = Field(default=0.3, ge=0.0)

    # Dependency graph
    whatif_noise_threshold: float = Field(default=0.01, ge=0.0, le=1.0)


# Global configuration instance
config: AppConfig | None = None


def get_config() -> AppConfig:
    """
    Get the global configuration instance.

    Returns:
        AppConfig: Configuration instance
    """
    global config
    if config is None:
        config = AppConfig()
    return config


def initialize_config(config_path: Path | None = None) -> AppConfig:
    """
    Initialize configuration from file or environment.

    Args:
        config_path: Path to a YAML configuration file

    Returns:
        AppConfig: Initialized configuration
    """
    global config

    if config_path and config_path.exists():
        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}
        if not isinstance(config_data, dict):
            raise ConfigurationError(
                f"Configuration file {config_path} must contain a mapping"
            )
        config = AppConfig(**config_data)
    else:
        config = AppConfig()

    return config
