"""Provisioner configuration settings.

ProvisionerSettings is the single configuration object accepted by create_app().
It is intentionally a plain dataclass (not env-coupled) so tests can inject config
without touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

_ENVIRONMENTS = ("local", "dev", "staging", "production")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
_TRUTHY = frozenset({"1", "true", "yes", "on"})
_DEFAULT_CORS_ORIGINS = ("http://localhost:5173", "http://localhost:3000")
_DEFAULT_SUFFIX_LENGTH = 4


@dataclass(frozen=True, slots=True)
class ProvisionerSettings:
    """Configuration for the provisioning orchestrator host application.

    All fields have sensible defaults for local development.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    # ── Identifiers ────────────────────────────────────────────────
    identifier_suffix_length: int = _DEFAULT_SUFFIX_LENGTH
    """Length of the random suffix appended to generated identifiers."""

    # ── Catalog ────────────────────────────────────────────────────
    include_disabled_types: bool = False
    """List resource types flagged as disabled (preview environments)."""

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    structured_logging: bool = True
    """Emit JSON log lines with request correlation fields."""

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: tuple[str, ...] = _DEFAULT_CORS_ORIGINS
    """Allowed CORS origins."""

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if self.environment not in _ENVIRONMENTS:
            errors.append(
                f"environment must be one of {', '.join(_ENVIRONMENTS)}, "
                f"got {self.environment!r}"
            )
        if not 1 <= self.identifier_suffix_length <= 8:
            errors.append("identifier_suffix_length must be between 1 and 8")
        if self.log_level.upper() not in _LOG_LEVELS:
            errors.append(f"log_level {self.log_level!r} is not a known level")
        if self.environment == "production" and self.include_disabled_types:
            errors.append("production: include_disabled_types must be false")
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> ProvisionerSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct ProvisionerSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        cors_raw = env.get("CORS_ORIGINS", "")
        cors = tuple(o.strip() for o in cors_raw.split(",") if o.strip()) if cors_raw else _DEFAULT_CORS_ORIGINS

        suffix_raw = env.get("IDENTIFIER_SUFFIX_LENGTH", "").strip()
        try:
            suffix_length = int(suffix_raw) if suffix_raw else _DEFAULT_SUFFIX_LENGTH
        except ValueError:
            # Surfaced by validate() instead of failing at parse time.
            suffix_length = 0

        return cls(
            environment=env.get("ENVIRONMENT", "local").strip().lower(),
            identifier_suffix_length=suffix_length,
            include_disabled_types=env.get("INCLUDE_DISABLED_TYPES", "").strip().lower() in _TRUTHY,
            log_level=env.get("LOG_LEVEL", "INFO").strip().upper(),
            structured_logging=env.get("STRUCTURED_LOGGING", "true").strip().lower() in _TRUTHY,
            cors_origins=cors,
        )
