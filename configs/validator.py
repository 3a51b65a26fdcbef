"""Configuration validation using JSON Schema."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict

import jsonschema
import yaml
from jsonschema import Draft7Validator, validators

from exceptions import ConfigValidationError
from log_config.logger import get_logger

logger = get_logger(__name__)

MIB = 1024 * 1024

# JSON Schema for default.yaml configuration
CONFIG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["recording"],
    "additionalProperties": False,
    "properties": {
        "recording": {
            "type": "object",
            "required": ["output_dir"],
            "additionalProperties": False,
            "properties": {
                "output_dir": {"type": "string", "minLength": 1},
                "internal_session_interval_s": {"type": "number", "minimum": 1, "default": 300},
                "snapshot_interval_frames": {"type": "integer", "minimum": 0, "default": 0},
                "video": {
                    "type": "object",
                    "default": {},
                    "additionalProperties": False,
                    "properties": {
                        "width": {"type": "integer", "minimum": 16, "maximum": 7680, "default": 1280},
                        "height": {"type": "integer", "minimum": 16, "maximum": 4320, "default": 720},
                        "fps": {"type": "number", "minimum": 1, "maximum": 240, "default": 30},
                        "codecs": {
                            "type": "array",
                            "items": {"type": "string", "minLength": 4, "maxLength": 4},
                            "minItems": 1,
                            "default": ["MJPG", "XVID", "MP4V"],
                        },
                    },
                },
            },
        },
        "quota": {
            "type": "object",
            "default": {},
            "additionalProperties": False,
            "properties": {
                "budget_bytes": {"type": "integer", "minimum": 0, "default": 30 * MIB},
                "refresh_interval_s": {"type": "number", "exclusiveMinimum": 0, "default": 3600},
                "state_path": {"type": "string", "default": "recsync_state.json"},
            },
        },
        "sync": {
            "type": "object",
            "default": {},
            "additionalProperties": False,
            "properties": {
                "storage_cap_bytes": {"type": "integer", "minimum": 0, "default": 300 * MIB},
                "max_workers": {"type": "integer", "minimum": 1, "maximum": 64, "default": 4},
                "auto_sync": {"type": "boolean", "default": True},
            },
        },
        "upload": {
            "type": "object",
            "default": {},
            "additionalProperties": False,
            "properties": {
                "enabled": {"type": "boolean", "default": False},
                "api_base": {"type": "string", "default": ""},
                "api_key": {"type": "string", "default": ""},
                "timeout_s": {"type": "number", "exclusiveMinimum": 0, "default": 30},
                "max_concurrent": {"type": "integer", "minimum": 1, "maximum": 32, "default": 4},
            },
        },
        "device": {
            "type": "object",
            "default": {},
            "additionalProperties": False,
            "properties": {
                "platform_name": {"type": ["string", "null"], "default": None},
                "locale": {"type": ["string", "null"], "default": None},
            },
        },
    },
}


def extend_with_default(validator_class):
    """Extend JSON Schema validator to set default values."""
    validate_properties = validator_class.VALIDATORS["properties"]

    def set_defaults(validator, properties, instance, schema):
        if isinstance(instance, dict):
            for prop, subschema in properties.items():
                if "default" in subschema:
                    instance.setdefault(prop, copy.deepcopy(subschema["default"]))

        for error in validate_properties(validator, properties, instance, schema):
            yield error

    return validators.extend(validator_class, {"properties": set_defaults})


DefaultValidatingValidator = extend_with_default(Draft7Validator)


def validate_config(config: Dict[str, Any]) -> None:
    """Validate configuration against JSON Schema, filling in defaults.

    Args:
        config: Configuration dictionary, updated in place with defaults

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    try:
        validator = DefaultValidatingValidator(CONFIG_SCHEMA)
        errors = list(validator.iter_errors(config))

        if errors:
            error_messages = []
            for error in errors:
                path = " -> ".join(str(p) for p in error.path) if error.path else "root"
                error_messages.append(f"{path}: {error.message}")

            logger.error(f"Configuration validation failed with {len(errors)} errors")
            for msg in error_messages:
                logger.error(f"  - {msg}")

            raise ConfigValidationError(
                f"Configuration validation failed with {len(errors)} error(s). See logs for details.",
                validation_errors=error_messages,
            )

        logger.debug("Configuration validation passed")

    except jsonschema.exceptions.SchemaError as e:
        logger.error(f"Invalid schema: {e}")
        raise ConfigValidationError(f"Invalid schema definition: {e}")


def validate_config_file(config_path: str) -> None:
    """Validate a YAML configuration file.

    Args:
        config_path: Path to configuration file

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigValidationError(f"Configuration file not found: {config_path}")

    try:
        with open(path, "r") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML: {e}")
        raise ConfigValidationError(f"Failed to parse configuration file: {e}")

    validate_config(config)


__all__ = ["validate_config", "validate_config_file", "CONFIG_SCHEMA"]
