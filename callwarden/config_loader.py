"""
CALLWARDEN Config Loader

Reads an access policy from YAML into a PolicyConfig. Only the top
level is validated here; individual entries are checked leniently by
the policy store, which skips what it cannot use.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator


class PolicyLoadError(Exception):
    pass


class PolicyConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    files: dict[Any, Any] = Field(default_factory=dict)
    functions: dict[Any, Any] = Field(default_factory=dict)
    halt_on_incident: bool = Field(True, alias="haltOnIncident")

    @field_validator("files", "functions", mode="before")
    @classmethod
    def _sections_are_mappings(cls, value: Any) -> dict:
        # A section of the wrong shape is ignored, same as a bad entry
        return dict(value) if isinstance(value, Mapping) else {}

    @field_validator("halt_on_incident", mode="before")
    @classmethod
    def _halt_defaults_on(cls, value: Any) -> Any:
        return True if value is None else value


def load_policy(path: Path | str) -> PolicyConfig:
    """Load a YAML policy file."""
    path = Path(path)
    if not path.is_file():
        raise PolicyLoadError(f"Policy file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise PolicyLoadError(f"Policy must be a mapping, got {type(data).__name__}: {path}")

    config = PolicyConfig.model_validate(data)
    logger.debug(
        f"[CONFIG] Loaded {path}: {len(config.files)} files, "
        f"{len(config.functions)} functions"
    )
    return config
