"""Loads ``RuntimeSettings`` from YAML files."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from chatmind.core.domain.config_schema import RuntimeSettings
from chatmind.core.domain.errors import ConfigError

logger = structlog.get_logger(__name__)


def settings_from_dict(data: dict[str, Any] | None) -> RuntimeSettings:
    """Validate a raw mapping into ``RuntimeSettings``.

    Raises:
        ConfigError: The mapping does not match the schema.
    """
    try:
        return RuntimeSettings.model_validate(data or {})
    except ValidationError as exc:
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        raise ConfigError("Invalid runtime settings", details={"errors": errors}) from exc


def load_runtime_settings(path: str | Path | None) -> RuntimeSettings:
    """Load settings from a YAML file.

    A missing path or file yields the defaults.

    Raises:
        ConfigError: The file is not valid YAML or fails validation.
    """
    if path is None:
        return RuntimeSettings()
    settings_path = Path(path)
    if not settings_path.exists():
        logger.debug("settings.not_found_using_defaults", path=str(settings_path))
        return RuntimeSettings()

    try:
        with open(settings_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(
            f"Settings file is not valid YAML: {settings_path}",
            details={"path": str(settings_path), "error": str(exc)},
        ) from exc

    if data is not None and not isinstance(data, dict):
        raise ConfigError(
            f"Settings file must contain a mapping: {settings_path}",
            details={"path": str(settings_path)},
        )
    settings = settings_from_dict(data)
    logger.debug("settings.loaded", path=str(settings_path))
    return settings
