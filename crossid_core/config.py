"""
Configuration Management Module
===============================

Centralized configuration for the CROSSID cross-validation engine.
Supports YAML files, environment variables, and programmatic configuration.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Dict, Any, List, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from crossid_core.errors import ConfigurationError


# =============================================================================
# Configuration Classes (Pydantic Models)
# =============================================================================

class MatchingConfig(BaseModel):
    """Field matching thresholds."""

    fuzzy_threshold: float = Field(
        default=0.8,
        ge=0.0, le=1.0,
        description="Minimum consistency ratio for a multi-source pass"
    )
    phone_match_threshold: float = Field(
        default=0.9,
        ge=0.0, le=1.0,
        description="Minimum phone comparison score for a phone match"
    )
    email_match_threshold: float = Field(
        default=0.85,
        ge=0.0, le=1.0,
        description="Minimum email similarity for an email match"
    )
    name_match_threshold: float = Field(
        default=0.75,
        ge=0.0, le=1.0,
        description="Minimum name similarity for a name match"
    )
    two_source_leniency: float = Field(
        default=0.8,
        ge=0.0, le=1.0,
        description="Threshold multiplier applied when exactly two sources are available"
    )


class WeightsConfig(BaseModel):
    """Points awarded per matching field in a pairwise comparison."""

    email: float = Field(default=30.0, ge=0.0, le=100.0)
    phone: float = Field(default=35.0, ge=0.0, le=100.0)
    name: float = Field(default=25.0, ge=0.0, le=100.0)
    user_id: float = Field(default=10.0, ge=0.0, le=100.0)
    account: float = Field(
        default=0.0,
        ge=0.0, le=100.0,
        description="Account reference match (disabled by default)"
    )
    normalize_by_compared: bool = Field(
        default=True,
        description="Scale pair scores by the weight of fields both sources provided"
    )


class CacheConfig(BaseModel):
    """Verification cache and record retention."""

    cache_ttl_seconds: float = Field(
        default=86400.0,
        gt=0.0,
        description="Time-to-live for cached cross-validation records"
    )
    verification_expiry_seconds: float = Field(
        default=86400.0,
        gt=0.0,
        description="How long records stay retrievable by verification ID"
    )
    sweep_interval_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="Background sweep period"
    )
    background_sweep: bool = Field(
        default=False,
        description="Start a background sweeper thread on init"
    )


class RateLimitConfig(BaseModel):
    """Sliding-window rate limiting for pre-screening."""

    enabled: bool = Field(default=True)
    window_seconds: float = Field(
        default=3600.0,
        gt=0.0,
        description="Trailing window length"
    )
    max_attempts: int = Field(
        default=5,
        ge=1,
        description="Attempts allowed inside the window"
    )


class ScreeningConfig(BaseModel):
    """Pre-screening rules."""

    suspicious_patterns: List[str] = Field(
        default=["test", "demo", "fake", "temp", "12345", "00000"],
        description="Case-insensitive tokens that flag an identity as suspicious"
    )
    min_user_id_length: int = Field(default=3, ge=1)
    min_phone_digits: int = Field(default=10, ge=1)


class ComplianceConfig(BaseModel):
    """Audit trail configuration."""

    enabled: bool = Field(
        default=False,
        description="Enable the file-backed audit trail"
    )
    audit_log_path: str = Field(
        default="./data/audit_logs",
        description="Audit log directory"
    )
    log_retention_days: int = Field(
        default=365,
        ge=1,
        description="Log retention period in days"
    )
    mask_pii: bool = Field(
        default=True,
        description="Mask identifiers in audit events"
    )


# =============================================================================
# Master Configuration
# =============================================================================

# Flat override names accepted by ``ValidationConfig.with_overrides``.
OVERRIDE_PATHS: Dict[str, Tuple[str, str]] = {
    "fuzzyThreshold": ("matching", "fuzzy_threshold"),
    "phoneMatchThreshold": ("matching", "phone_match_threshold"),
    "emailMatchThreshold": ("matching", "email_match_threshold"),
    "nameMatchThreshold": ("matching", "name_match_threshold"),
    "cacheTTL": ("cache", "cache_ttl_seconds"),
    "verificationExpiry": ("cache", "verification_expiry_seconds"),
    "rateLimitWindow": ("rate_limit", "window_seconds"),
    "rateLimitMax": ("rate_limit", "max_attempts"),
    "fuzzy_threshold": ("matching", "fuzzy_threshold"),
    "phone_match_threshold": ("matching", "phone_match_threshold"),
    "email_match_threshold": ("matching", "email_match_threshold"),
    "name_match_threshold": ("matching", "name_match_threshold"),
    "cache_ttl": ("cache", "cache_ttl_seconds"),
    "verification_expiry": ("cache", "verification_expiry_seconds"),
    "rate_limit_window": ("rate_limit", "window_seconds"),
    "rate_limit_max": ("rate_limit", "max_attempts"),
}


class ValidationConfig(BaseModel):
    """Master engine configuration combining all sections."""

    project_name: str = Field(default="CROSSID")
    version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    weights: WeightsConfig = Field(default_factory=WeightsConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    screening: ScreeningConfig = Field(default_factory=ScreeningConfig)
    compliance: ComplianceConfig = Field(default_factory=ComplianceConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump()

    def thresholds(self) -> Dict[str, float]:
        """The four matching thresholds, keyed by their external names."""
        return {
            "fuzzyThreshold": self.matching.fuzzy_threshold,
            "phoneMatchThreshold": self.matching.phone_match_threshold,
            "emailMatchThreshold": self.matching.email_match_threshold,
            "nameMatchThreshold": self.matching.name_match_threshold,
        }

    def with_overrides(self, **overrides: Any) -> "ValidationConfig":
        """
        Return a new validated configuration with flat overrides applied.

        Accepts the external names (``fuzzyThreshold``, ``cacheTTL``,
        ``rateLimitMax`` ...) and their snake_case equivalents.

        Raises:
            ConfigurationError: Unknown key or out-of-range value
        """
        data = self.model_dump()
        for key, value in overrides.items():
            if key not in OVERRIDE_PATHS:
                raise ConfigurationError(
                    f"Unknown configuration key: {key}",
                    details={"key": key},
                )
            section, name = OVERRIDE_PATHS[key]
            data[section][name] = value
        return build_config(data)

    def save_yaml(self, path: str | Path) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False, indent=2, sort_keys=False)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ValidationConfig":
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
        return build_config(data)

    @classmethod
    def from_env(cls) -> "ValidationConfig":
        """Load configuration from environment variables."""
        settings = EnvSettings()
        if settings.config_path and Path(settings.config_path).exists():
            config = cls.from_yaml(settings.config_path)
        else:
            config = cls()
        if settings.log_level:
            config = config.model_copy(update={"log_level": settings.log_level})
        return config


class EnvSettings(BaseSettings):
    """Environment overrides (``CROSSID_CONFIG_PATH``, ``CROSSID_LOG_LEVEL``)."""

    model_config = SettingsConfigDict(env_prefix="CROSSID_")

    config_path: Optional[str] = None
    log_level: Optional[str] = None


# =============================================================================
# Utility Functions
# =============================================================================

def build_config(data: Optional[Dict[str, Any]] = None) -> ValidationConfig:
    """
    Validate a raw mapping into a ``ValidationConfig``.

    Raises:
        ConfigurationError: If any value is out of range or malformed
    """
    try:
        return ValidationConfig.model_validate(data or {})
    except PydanticValidationError as e:
        fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise ConfigurationError(
            f"Invalid configuration: {', '.join(fields)}",
            details={"errors": e.errors(include_url=False)},
        ) from e


def load_config(path: Optional[str | Path] = None) -> ValidationConfig:
    """
    Load engine configuration from file or environment.

    Args:
        path: Path to YAML configuration file.
              If None, checks CROSSID_CONFIG_PATH env var, then uses defaults.

    Returns:
        ValidationConfig instance

    Example:
        >>> config = load_config("configs/default.yaml")
        >>> config = load_config()  # Uses env var or defaults
    """
    if path is not None:
        return ValidationConfig.from_yaml(path)
    return ValidationConfig.from_env()


def create_default_config(path: str | Path = "configs/default.yaml") -> ValidationConfig:
    """Create and save a default configuration file."""
    config = ValidationConfig()
    config.save_yaml(path)
    return config
