"""Configuration management for the Bedrock streaming client."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

REGION_ENV_VAR = "AWS_DEFAULT_REGION"


class Configuration:
    """Manages configuration and environment variables for the client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables.

        Args:
            config_path: YAML file to load instead of the packaged config.yaml.
        """
        self.load_env()  # Load .env so AWS_* variables reach botocore
        self._config = self._load_yaml_config(config_path)

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self, config_path: str | None = None) -> dict[str, Any]:
        """Load configuration from YAML file."""
        if config_path is None:
            config_path = os.path.join(os.path.dirname(__file__), "config.yaml")
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def default_region(self) -> str | None:
        """Region from AWS_DEFAULT_REGION, falling back to bedrock.region."""
        return os.getenv(REGION_ENV_VAR) or self._config.get("bedrock", {}).get("region")

    def get_bedrock_config(self) -> dict[str, Any]:
        """Get model and endpoint configuration from YAML.

        Returns:
            Bedrock configuration dictionary with validated values.

        Raises:
            ValueError: If required parameters are missing or invalid.
        """
        bedrock_config = self._config.get("bedrock", {})

        required_keys = [
            "model", "service", "endpoint_suffix", "max_tokens", "temperature"
        ]
        for key in required_keys:
            if key not in bedrock_config:
                raise ValueError(
                    f"bedrock.{key} must be explicitly configured in config.yaml"
                )

        max_tokens = bedrock_config["max_tokens"]
        temperature = bedrock_config["temperature"]

        if "." not in bedrock_config["model"]:
            raise ValueError(
                "bedrock.model must be a dotted model id such as "
                "'amazon.titan-tg1-large'"
            )
        if not isinstance(max_tokens, int) or max_tokens < 1:
            raise ValueError("bedrock.max_tokens must be a positive integer")
        if not 0 <= temperature <= 1:
            raise ValueError("bedrock.temperature must be between 0 and 1")

        return {key: bedrock_config[key] for key in required_keys}

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP client timeouts from YAML.

        Returns:
            HTTP client configuration dictionary with validated values.

        Raises:
            ValueError: If required timeouts are missing or not positive.
        """
        http_config = self._config.get("bedrock", {}).get("http_client", {})

        required_keys = [
            "connect_timeout", "read_timeout", "write_timeout", "pool_timeout"
        ]
        for key in required_keys:
            if key not in http_config:
                raise ValueError(
                    f"bedrock.http_client.{key} must be explicitly configured "
                    "in config.yaml"
                )
            if http_config[key] <= 0:
                raise ValueError(f"bedrock.http_client.{key} must be positive")

        return {key: http_config[key] for key in required_keys}

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML.

        Returns:
            Logging configuration dictionary.
        """
        return self._config.get("logging", {})
