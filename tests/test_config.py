"""Tests for configuration management module."""

import os
import tempfile
import unittest
from pathlib import Path

from pydantic import ValidationError

from controlrisk.utils.config import AppConfig, get_config, initialize_config
from controlrisk.utils.error_handling import ConfigurationError


class TestAppConfig(unittest.TestCase):
    """Test cases for AppConfig class."""

    def test_app_config_initialization(self):
        """Test AppConfig defaults."""
        config = AppConfig()
        self.assertEqual(config.log_level, "INFO")
        self.assertEqual(config.default_industry, "default")
        self.assertIsNone(config.random_seed)
        self.assertEqual(config.bootstrap_iterations, 1000)
        self.assertEqual(config.bootstrap_confidence_level, 0.95)
        self.assertEqual(config.max_rejection_attempts, 10000)
        self.assertEqual(config.monte_carlo_iterations, 10000)
        self.assertEqual(config.monte_carlo_volatility, 0.3)
        self.assertEqual(config.whatif_noise_threshold, 0.01)

    def test_app_config_from_env(self):
        """Test AppConfig loading from environment variables."""
        os.environ["LOG_LEVEL"] = "DEBUG"
        os.environ["RANDOM_SEED"] = "42"
        os.environ["DEFAULT_INDUSTRY"] = "healthcare"

        try:
            config = AppConfig()
            self.assertEqual(config.log_level, "DEBUG")
            self.assertEqual(config.random_seed, 42)
            self.assertEqual(config.default_industry, "healthcare")
        finally:
            del os.environ["LOG_LEVEL"]
            del os.environ["RANDOM_SEED"]
            del os.environ["DEFAULT_INDUSTRY"]

    def test_get_config_singleton(self):
        """Test that get_config returns singleton instance."""
        config1 = get_config()
        config2 = get_config()
        self.assertIs(config1, config2)

    def test_app_config_rejects_out_of_range_values(self):
        """Test that range constraints are enforced."""
        with self.assertRaises(ValidationError):
            AppConfig(bootstrap_confidence_level=1.5)
        with self.assertRaises(ValidationError):
            AppConfig(max_rejection_attempts=0)


class TestInitializeConfig(unittest.TestCase):
    """Test cases for YAML configuration loading."""

    def test_initialize_config_from_yaml(self):
        """Test values are read from a YAML file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yaml"
            path.write_text("random_seed: 7\nmonte_carlo_iterations: 500\n")

            config = initialize_config(path)

            self.assertEqual(config.random_seed, 7)
            self.assertEqual(config.monte_carlo_iterations, 500)
            self.assertIs(get_config(), config)

    def test_initialize_config_missing_file_uses_defaults(self):
        """Test that a missing file falls back to environment/defaults."""
        config = initialize_config(Path("/nonexistent/controlrisk.yaml"))
        self.assertEqual(config.bootstrap_iterations, 1000)

    def test_initialize_config_rejects_non_mapping(self):
        """Test that a YAML list is rejected."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yaml"
            path.write_text("- a\n- b\n")

            with self.assertRaises(ConfigurationError):
                initialize_config(path)
