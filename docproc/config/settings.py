"""Declarative configuration for the document processor.

Field names and logging settings can be loaded from YAML and overridden
from the environment. Capabilities (the transform, error renderer and
hooks) are code and are supplied when the ProcessorConfig is built.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from docproc.processor.runner import (
    DEFAULT_ORDER_FIELD,
    DEFAULT_OUTPUT_FIELD,
    DEFAULT_STATUS_FIELD,
)
from docproc.utils.logging import LEVELS
from docproc.utils.result import ConfigError, Err, Ok, Result

DEFAULT_INPUT_FIELD = "input"

# Environment variables that override file settings
ENV_INPUT_FIELD = "DOCPROC_INPUT_FIELD"
ENV_ORDER_FIELD = "DOCPROC_ORDER_FIELD"
ENV_LOG_LEVEL = "DOCPROC_LOG_LEVEL"


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "info"
    format: str = "json"


@dataclass
class ProcessorSettings:
    """
    Complete declarative processor configuration.

    Defaults mirror ProcessorConfig so an empty file is a valid config.
    """

    input_field: str = DEFAULT_INPUT_FIELD
    order_field: str = DEFAULT_ORDER_FIELD
    status_field: str = DEFAULT_STATUS_FIELD
    output_field: str = DEFAULT_OUTPUT_FIELD
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> Result["ProcessorSettings", ConfigError]:
        """
        Load settings from a YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Result with loaded settings or error
        """
        path = Path(path)

        if not path.exists():
            return Err(ConfigError(
                field="path",
                message=f"Configuration file not found: {path}",
            ))

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            return Err(ConfigError(
                field="yaml",
                message=f"Failed to parse YAML: {e}",
            ))
        except OSError as e:
            return Err(ConfigError(
                field="file",
                message=f"Failed to read config file: {e}",
            ))

        if not isinstance(data, Mapping):
            return Err(ConfigError(
                field="yaml",
                message=f"Top level must be a mapping, got {type(data).__name__}",
            ))

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Result["ProcessorSettings", ConfigError]:
        """
        Create settings from a dictionary.

        Accepts both snake_case keys and the camelCase option names
        (inputField, orderField, ...).

        Args:
            data: Configuration dictionary

        Returns:
            Result with loaded settings or error
        """
        fields = data.get("fields", data)
        if not isinstance(fields, Mapping):
            return Err(ConfigError(field="fields", message="Must be a mapping"))

        def pick(snake: str, camel: str, default: str) -> Any:
            return fields.get(snake, fields.get(camel, default))

        logging_data = data.get("logging", {}) or {}
        if not isinstance(logging_data, Mapping):
            return Err(ConfigError(field="logging", message="Must be a mapping"))

        settings = cls(
            input_field=pick("input_field", "inputField", DEFAULT_INPUT_FIELD),
            order_field=pick("order_field", "orderField", DEFAULT_ORDER_FIELD),
            status_field=pick("status_field", "statusField", DEFAULT_STATUS_FIELD),
            output_field=pick("output_field", "outputField", DEFAULT_OUTPUT_FIELD),
            logging=LoggingConfig(
                level=str(logging_data.get("level", "info")),
                format=str(logging_data.get("format", "json")),
            ),
        )
        return Ok(settings)

    def with_env(self, environ: Optional[Mapping[str, str]] = None) -> "ProcessorSettings":
        """Return a copy with environment overrides applied."""
        env = os.environ if environ is None else environ
        return ProcessorSettings(
            input_field=env.get(ENV_INPUT_FIELD, self.input_field),
            order_field=env.get(ENV_ORDER_FIELD, self.order_field),
            status_field=self.status_field,
            output_field=self.output_field,
            logging=LoggingConfig(
                level=env.get(ENV_LOG_LEVEL, self.logging.level),
                format=self.logging.format,
            ),
        )

    def validate(self) -> Result[None, ConfigError]:
        """
        Validate settings values.

        Returns:
            Result indicating success or validation error
        """
        names = [
            ("input_field", self.input_field),
            ("order_field", self.order_field),
            ("status_field", self.status_field),
            ("output_field", self.output_field),
        ]
        for name, value in names:
            if not isinstance(value, str) or not value.strip():
                return Err(ConfigError(
                    field=name,
                    message=f"Must be a non-empty string, got {value!r}",
                ))

        seen: dict[str, str] = {}
        for name, value in names:
            if value in seen:
                return Err(ConfigError(
                    field=name,
                    message=f"Duplicates {seen[value]} ({value!r})",
                ))
            seen[value] = name

        if self.logging.level.lower() not in LEVELS:
            return Err(ConfigError(
                field="logging.level",
                message=f"Unknown level {self.logging.level!r}",
            ))
        if self.logging.format not in ("json", "text"):
            return Err(ConfigError(
                field="logging.format",
                message=f"Must be 'json' or 'text', got {self.logging.format!r}",
            ))

        return Ok(None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "input_field": self.input_field,
            "order_field": self.order_field,
            "status_field": self.status_field,
            "output_field": self.output_field,
            "logging": {
                "level": self.logging.level,
                "format": self.logging.format,
            },
        }


def load_config(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Result[ProcessorSettings, ConfigError]:
    """
    Load settings from a file (if given), overlay the environment, validate.

    Args:
        path: YAML file; defaults are used when omitted
        environ: Environment mapping (default: os.environ)

    Returns:
        Result with loaded settings or error
    """
    if path is not None:
        result = ProcessorSettings.from_yaml(path)
        if result.is_err():
            return result
        settings = result.unwrap()
    else:
        settings = ProcessorSettings()

    settings = settings.with_env(environ)

    validation_result = settings.validate()
    if validation_result.is_err():
        return Err(validation_result.unwrap_err())

    return Ok(settings)
