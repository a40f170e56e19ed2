"""
SKDocs configuration — loaded from ~/.skdocs/config/config.yaml.

Missing or unreadable config falls back to defaults with a warning;
a broken config file should never lock a user out of their documents.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from . import DOCS_HOME

logger = logging.getLogger("skdocs.config")

CONFIG_RELPATH = Path("config") / "config.yaml"


class StoreBackendType(str, Enum):
    """Where document and branch records live."""

    MEMORY = "memory"
    FILE = "file"


class StalenessPolicy(str, Enum):
    """What merge does when a branch was cut from an older version.

    REJECT refuses the merge so the author resubmits against the current
    version. OVERWRITE lets the most recently merged branch win at
    whole-document granularity.
    """

    REJECT = "reject"
    OVERWRITE = "overwrite"


class DocsConfig(BaseModel):
    """Persistent configuration for an SKDocs home."""

    store_backend: StoreBackendType = StoreBackendType.FILE
    store_path: Optional[Path] = Field(
        default=None, description="Record directory for the file store (defaults to <home>/store)",
    )
    staleness_policy: StalenessPolicy = StalenessPolicy.REJECT
    branch_expiry_days: int = Field(default=30, ge=1)
    audit_enabled: bool = True
    encrypt_private_keys: bool = False


def default_home() -> Path:
    return Path(DOCS_HOME).expanduser()


def load_config(home: Optional[Path] = None) -> DocsConfig:
    """Load configuration from ``<home>/config/config.yaml``.

    Args:
        home: SKDocs home. Defaults to $SKDOCS_HOME or ~/.skdocs.

    Returns:
        DocsConfig, defaults if the file is absent or invalid.
    """
    config_file = (home or default_home()) / CONFIG_RELPATH
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            return DocsConfig(**data)
        except (yaml.YAMLError, ValidationError, TypeError) as exc:
            logger.warning("Failed to load config %s: %s", config_file, exc)
    return DocsConfig()


def save_config(home: Path, config: DocsConfig) -> Path:
    """Write configuration to ``<home>/config/config.yaml``."""
    config_file = home / CONFIG_RELPATH
    config_file.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", exclude_none=True)
    config_file.write_text(yaml.dump(data, default_flow_style=False), encoding="utf-8")
    return config_file
