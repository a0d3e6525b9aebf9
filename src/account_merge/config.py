"""
Configuration for the merge tool.

Settings come from environment variables and, optionally, a YAML file whose
keys override the environment:

    postgres:
      dsn: "dbname=forum host=db"
      schema: forum
    vault:
      path: forum-postgres
      mount_point: secret
    pushgateway_url: "localhost:9091"
    json_logging: true
    editable_fields:
      Posts: [contents, moderationGuidelines]
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

import yaml

from account_merge.errors import ValidationError
from account_merge.reconciliation.plan import DEFAULT_EDITABLE_FIELDS

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass
class MergeConfig:
    """Runtime settings for one invocation of the merge tool."""

    postgres_dsn: Optional[str] = None
    postgres_schema: str = "forum"
    vault_path: Optional[str] = None
    vault_mount_point: str = "secret"
    pushgateway_url: Optional[str] = None
    json_logging: bool = False
    editable_fields: Dict[str, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_EDITABLE_FIELDS.items()}
    )

    @classmethod
    def from_env(cls) -> "MergeConfig":
        """Build a config from environment variables."""
        return cls(
            postgres_dsn=os.getenv("MERGE_POSTGRES_DSN"),
            postgres_schema=os.getenv("MERGE_POSTGRES_SCHEMA", "forum"),
            vault_path=os.getenv("MERGE_VAULT_PATH"),
            vault_mount_point=os.getenv("MERGE_VAULT_MOUNT", "secret"),
            pushgateway_url=os.getenv("MERGE_PUSHGATEWAY_URL"),
            json_logging=_env_flag("JSON_LOGGING"),
        )

    @classmethod
    def load(cls, path: Optional[str] = None) -> "MergeConfig":
        """
        Build a config from the environment, overridden by a YAML file.

        Args:
            path: Optional YAML file

        Returns:
            MergeConfig

        Raises:
            ValidationError: If the file is not a YAML mapping or has bad values
        """
        config = cls.from_env()
        if not path:
            return config

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValidationError(f"Config file {path} must contain a mapping")

        config.apply(data)
        logger.info(f"Loaded configuration from {path}")
        return config

    def apply(self, data: Dict[str, Any]) -> None:
        """Override settings from a parsed YAML mapping."""
        postgres = data.get("postgres") or {}
        self.postgres_dsn = postgres.get("dsn", self.postgres_dsn)
        self.postgres_schema = postgres.get("schema", self.postgres_schema)

        vault = data.get("vault") or {}
        self.vault_path = vault.get("path", self.vault_path)
        self.vault_mount_point = vault.get("mount_point", self.vault_mount_point)

        self.pushgateway_url = data.get("pushgateway_url", self.pushgateway_url)
        self.json_logging = bool(data.get("json_logging", self.json_logging))

        if "editable_fields" in data:
            editable = data["editable_fields"] or {}
            if not isinstance(editable, dict) or not all(isinstance(v, list) for v in editable.values()):
                raise ValidationError("editable_fields must map collection names to lists of field names")
            self.editable_fields = {str(k): [str(f) for f in v] for k, v in editable.items()}
