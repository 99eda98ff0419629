# ==============================================================================
# CONFIGURATION LOADER - YAML Schema Files
# ==============================================================================
# Reads the application file and every backoffice schema under a directory,
# validates them and returns an immutable snapshot
# ==============================================================================

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from backoffice.config.models import AppConfig, BackofficeConfig
from backoffice.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

YAML_SUFFIXES = (".yaml", ".yml")


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """
    Parse one YAML document with ``yaml.safe_load``.

    Raises:
        ConfigurationError: If the file cannot be read or is not a mapping
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Failed to read config file {path}: {e}",
            details={"file": str(path)},
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {path} must contain a mapping at the top level",
            details={"file": str(path)},
        )
    return data


def _format_pydantic_errors(exc: PydanticValidationError) -> List[Dict[str, Any]]:
    return [
        {"location": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]


def load_app_config(path: Union[str, Path]) -> AppConfig:
    """
    Load the application config file.

    A missing file is not an error: defaults are used.
    """
    path = Path(path)
    if not path.exists():
        logger.debug("App config not found: %s (using defaults)", path)
        return AppConfig()

    data = _load_yaml_file(path)
    try:
        config = AppConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Invalid app config {path}",
            details={"file": str(path), "errors": _format_pydantic_errors(e)},
        ) from e

    logger.info("Loaded app configuration from: %s", path)
    return config


def parse_backoffice(data: Dict[str, Any], source: str = "<memory>") -> BackofficeConfig:
    """
    Validate one backoffice document and check its internal references.

    Args:
        data: Parsed YAML mapping
        source: File name used in error messages

    Raises:
        ConfigurationError: On schema or reference errors
    """
    try:
        backoffice = BackofficeConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Invalid backoffice schema in {source}",
            details={"file": source, "errors": _format_pydantic_errors(e)},
        ) from e

    check_references(backoffice, source)
    return backoffice


def check_references(backoffice: BackofficeConfig, source: str = "<memory>") -> None:
    """
    Cross-check ids inside a backoffice.

    Every action must name a declared data source, section ids must be
    unique, and relationships must join declared sections.
    """
    problems: List[str] = []

    seen_sections = set()
    for section in backoffice.sections:
        if section.id in seen_sections:
            problems.append(f"duplicate section id '{section.id}'")
        seen_sections.add(section.id)

        for action in section.actions:
            if action.data_source not in backoffice.data_sources:
                problems.append(
                    f"action '{section.id}.{action.id}' uses unknown data source "
                    f"'{action.data_source}'"
                )

    for relationship in backoffice.relationships:
        for end in (relationship.from_section, relationship.to_section):
            if end not in seen_sections:
                problems.append(
                    f"relationship '{relationship.id}' references unknown section '{end}'"
                )
        junction = relationship.junction
        if junction and junction.data_source and junction.data_source not in backoffice.data_sources:
            problems.append(
                f"relationship '{relationship.id}' junction uses unknown data source "
                f"'{junction.data_source}'"
            )

    if problems:
        raise ConfigurationError(
            f"Inconsistent backoffice '{backoffice.id}' in {source}",
            details={"file": source, "problems": problems},
        )


def load_backoffices(directory: Union[str, Path]) -> List[BackofficeConfig]:
    """
    Load every backoffice schema below ``directory``.

    Files are read recursively in sorted order so ids resolve the same way
    on every start.

    Raises:
        ConfigurationError: On unreadable files, invalid schemas or
            duplicate backoffice ids
    """
    directory = Path(directory)
    if not directory.is_dir():
        logger.warning("Backoffices directory not found: %s", directory)
        return []

    backoffices: List[BackofficeConfig] = []
    seen: Dict[str, Path] = {}

    for path in sorted(p for p in directory.rglob("*") if p.suffix in YAML_SUFFIXES):
        backoffice = parse_backoffice(_load_yaml_file(path), source=str(path))
        if backoffice.id in seen:
            raise ConfigurationError(
                f"Duplicate backoffice id '{backoffice.id}' in {path} and {seen[backoffice.id]}",
                details={"file": str(path)},
            )
        seen[backoffice.id] = path
        backoffices.append(backoffice)
        logger.info(
            "Loaded backoffice '%s' (%d sections, %d data sources) from %s",
            backoffice.id,
            len(backoffice.sections),
            len(backoffice.data_sources),
            path,
        )

    return backoffices
