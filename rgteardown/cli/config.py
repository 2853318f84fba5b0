"""Configuration loading.

Values come from, in increasing precedence: defaults, the YAML config file
($RGTEARDOWN_CONFIG or ~/.rgteardown/config.yaml), environment variables and
CLI options.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..models.resource import PROTECTION_TAG
from ..teardown.retry import Backoff, RetryPolicy

DEFAULT_CONFIG_PATH = Path.home() / ".rgteardown" / "config.yaml"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class ConfigError(Exception):
    """Invalid or unreadable configuration."""


@dataclass
class Config:
    """Tool configuration.

    Attributes:
        subscription: Azure subscription ID (default: the az CLI's current one)
        log_level: Log level name
        stage_concurrency: Concurrent removal tasks per stage
        group_concurrency: Concurrent groups in concurrent mode
        max_attempts: Attempts per removal technique
        backoff_seconds: First retry delay
        max_backoff_seconds: Retry delay cap
        operation_timeout: Seconds one removal call may take (None: unbounded)
        group_timeout: Seconds after which no further stage starts for a group (None: unbounded)
        protection_tag: Tag key whose value "true" protects a group
        protected_groups: Group name patterns that are always kept
        audit_dir: Directory for the audit log (None: audit disabled)
        az_path: Azure CLI executable
    """

    subscription: Optional[str] = None
    log_level: str = "WARNING"
    stage_concurrency: int = 8
    group_concurrency: int = 4
    max_attempts: int = 3
    backoff_seconds: float = 2.0
    max_backoff_seconds: float = 60.0
    operation_timeout: Optional[float] = 900.0
    group_timeout: Optional[float] = None
    protection_tag: str = PROTECTION_TAG
    protected_groups: List[str] = field(default_factory=list)
    audit_dir: Optional[str] = None
    az_path: str = "az"

    @classmethod
    def load(cls, path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> "Config":
        """Load configuration from file and environment.

        Args:
            path: Config file (default: $RGTEARDOWN_CONFIG or ~/.rgteardown/config.yaml)
            environ: Environment mapping (default: os.environ)

        Returns:
            Validated Config

        Raises:
            ConfigError: If the file cannot be parsed or a value is invalid
        """
        env = os.environ if environ is None else environ
        config_path = Path(path or env.get("RGTEARDOWN_CONFIG") or DEFAULT_CONFIG_PATH).expanduser()

        data: Dict[str, Any] = {}
        if config_path.exists():
            try:
                with open(config_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"{config_path} must contain a mapping")
        elif path:
            raise ConfigError(f"Config file not found: {config_path}")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config key(s) in {config_path}: {', '.join(unknown)}")

        config = cls(**data)

        subscription = env.get("RGTEARDOWN_SUBSCRIPTION") or env.get("AZURE_SUBSCRIPTION_ID")
        if subscription:
            config.subscription = subscription
        if env.get("RGTEARDOWN_LOG_LEVEL"):
            config.log_level = env["RGTEARDOWN_LOG_LEVEL"]
        if env.get("RGTEARDOWN_AUDIT_DIR"):
            config.audit_dir = env["RGTEARDOWN_AUDIT_DIR"]

        config.validate()
        return config

    def validate(self) -> bool:
        """Validate configuration values.

        Raises:
            ConfigError: If any value is out of range
        """
        self.log_level = str(self.log_level).upper()
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}")

        for name in ("stage_concurrency", "group_concurrency", "max_attempts"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ConfigError(f"{name} must be a positive integer")

        if self.backoff_seconds < 0 or self.max_backoff_seconds < self.backoff_seconds:
            raise ConfigError("backoff_seconds must be >= 0 and <= max_backoff_seconds")

        for name in ("operation_timeout", "group_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigError(f"{name} must be positive")

        if not self.protection_tag:
            raise ConfigError("protection_tag cannot be empty")

        return True

    def retry_policy(self, operation_timeout: Optional[float] = None) -> RetryPolicy:
        """Retry policy built from the configured attempts, backoff and timeout."""
        return RetryPolicy(
            max_attempts=self.max_attempts,
            backoff=Backoff(base=self.backoff_seconds, maximum=self.max_backoff_seconds),
            operation_timeout=operation_timeout if operation_timeout is not None else self.operation_timeout,
        )
