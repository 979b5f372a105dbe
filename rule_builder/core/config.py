"""Library configuration using Pydantic Settings.

Configuration is loaded from environment variables prefixed with
``RULE_BUILDER_``.

Optionally, you may point ``RULE_BUILDER_ENV_FILE`` at a local env file (for
development). Leave it unset in deployed environments so injected variables are
the single source of truth.
"""

import os

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """
    Engine settings with type validation.

    Every value has a default so the engine works out of the box; the
    environment only overrides.
    """

    model_config = SettingsConfigDict(
        env_file=os.getenv("RULE_BUILDER_ENV_FILE") or None,
        env_prefix="RULE_BUILDER_",
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"

    # Observability
    structured_logs: bool = True
    metrics_enabled: bool = True

    # Editing
    # Bounded undo/redo log size
    history_max_size: int = 50
    # Deepest group level allowed by add_group (root group is level 0)
    max_nesting_depth: int = 5

    # Readable output
    # strftime pattern used for date values in the human-readable backend
    readable_date_format: str = "%m/%d/%Y"

    # Value resolver
    resolver_cache_seconds: float = 300.0
    resolver_page_size: int = 20

    # Saved rules (filesystem store)
    saved_rules_dir: str = ".local/saved-rules"
    saved_rules_key: str = "rule-builder-saved-rules"
    saved_folders_key: str = "rule-builder-saved-folders"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level to upper case and reject unknown levels."""
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {list(_LOG_LEVELS)}, got '{v}'")
        return level

    @field_validator("history_max_size", "resolver_page_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("max_nesting_depth")
    @classmethod
    def validate_max_nesting_depth(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_nesting_depth cannot be negative")
        return v

    @model_validator(mode="after")
    def validate_storage_keys(self) -> "Settings":
        """Rules and folders must not share a storage key."""
        if self.saved_rules_key == self.saved_folders_key:
            raise ValueError("saved_rules_key and saved_folders_key must differ")
        return self


settings = Settings()
