# src/agenttrace/core/config.py
"""Configuration for the agenttrace host plugin.

Settings are validated with Pydantic and loaded through Dynaconf, which
layers (highest priority first):
1. Environment variables (AGENTTRACE_*), nested keys as AGENTTRACE_OTLP__TIMEOUT
2. Optional YAML settings file
3. Defaults from the Pydantic schema

The backend credential follows the host convention and is read from
HONEYCOMB_API_KEY / HONEYCOMB_DATASET when not set explicitly. Tracing is
enabled only when a credential is present.

Time-to-live policy and sweep cadence are module constants, not settings.
"""

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, SecretStr, field_validator

# =============================================================================
# TTL policy (seconds)
# =============================================================================

# Sessions can be long-running
UNIT_TTL_SECONDS = 30 * 60
# Phases live exactly as long as their unit
PHASE_TTL_SECONDS = UNIT_TTL_SECONDS
# A delegate is expected to start soon after being dispatched
HANDOFF_TTL_SECONDS = 10 * 60
# Tools should complete quickly
TOOL_EXECUTION_TTL_SECONDS = 5 * 60
SWEEP_INTERVAL_SECONDS = 5 * 60

# =============================================================================
# Payload bounds
# =============================================================================

ARGS_PREVIEW_MAX_CHARS = 200
MAX_RETAINED_TOOL_ERRORS = 50

DEFAULT_SERVICE_NAME = "opencode-agents"
DEFAULT_DATASET = "opencode-agents"
DEFAULT_ENDPOINT = "https://api.honeycomb.io/v1/traces"
ENV_PREFIX = "AGENTTRACE"
DEFAULT_DELEGATE_TOOL = "task"

KNOWN_CORRELATION_STRATEGIES = frozenset({"parent_id", "title"})

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


class ExporterSettings(BaseModel):
    """One span exporter to attach to the tracer provider.

    Example YAML:
        exporters:
          - name: otlp
            options:
              timeout: 10
          - name: console
    """

    model_config = {"frozen": True}

    name: str = Field(min_length=1, description="Registered exporter name (otlp, console, ...)")
    options: dict[str, Any] = Field(default_factory=dict, description="Exporter-specific options")


def _default_exporters() -> tuple[ExporterSettings, ...]:
    return (ExporterSettings(name="otlp"),)


class TracingSettings(BaseModel):
    """Validated agenttrace configuration."""

    model_config = {"frozen": True}

    api_key: SecretStr | None = Field(default=None, description="Backend credential; tracing is off without it")
    dataset: str = Field(default=DEFAULT_DATASET, min_length=1, description="Destination dataset on the backend")
    service_name: str = Field(default=DEFAULT_SERVICE_NAME, min_length=1)
    endpoint: str = Field(default=DEFAULT_ENDPOINT, description="OTLP traces endpoint")
    exporters: tuple[ExporterSettings, ...] = Field(default_factory=_default_exporters)
    correlation_strategies: tuple[str, ...] = Field(
        default=("parent_id", "title"),
        description="Order in which delegation signals are tried on unit creation",
    )
    delegate_tool_name: str = Field(default=DEFAULT_DELEGATE_TOOL, min_length=1)
    phase_overrides: dict[str, str] = Field(
        default_factory=dict,
        description="Extra delegate-type -> phase mappings layered over the built-in map",
    )
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)

    @property
    def enabled(self) -> bool:
        """Tracing is gated on presence of an export credential."""
        return self.api_key is not None and self.api_key.get_secret_value() != ""

    @field_validator("correlation_strategies")
    @classmethod
    def validate_strategies(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Strategies must be known and listed at most once."""
        unknown = [name for name in v if name not in KNOWN_CORRELATION_STRATEGIES]
        if unknown:
            raise ValueError(f"Unknown correlation strategies {unknown}; available: {sorted(KNOWN_CORRELATION_STRATEGIES)}")
        if len(set(v)) != len(v):
            raise ValueError(f"Duplicate correlation strategies in {list(v)}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        normalized = v.upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log_level {v!r}")
        return normalized

    def backend_headers(self) -> dict[str, str]:
        """Headers identifying the team and dataset to the trace backend."""
        if self.api_key is None:
            return {}
        return {
            "x-honeycomb-team": self.api_key.get_secret_value(),
            "x-honeycomb-dataset": self.dataset,
        }


def _expand_env_vars(config: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values."""

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            env_value = environ.get(match.group(1))
            if env_value is not None:
                return env_value
            if match.group(2) is not None:
                return match.group(2)
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def _lower_keys(value: Any) -> Any:
    """Dynaconf upper-cases top-level keys; Pydantic expects field names."""
    if isinstance(value, dict):
        return {str(k).lower(): v for k, v in value.items()}
    return value


def load_settings(
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> TracingSettings:
    """Load settings from an optional YAML file with environment overrides.

    Args:
        config_path: Optional path to a YAML settings file.
        environ: Environment mapping read instead of os.environ, for the
            AGENTTRACE_* overrides, the credential fallback and ${VAR}
            expansion alike. Defaults to os.environ.

    Returns:
        Validated TracingSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config_path is given but doesn't exist
    """
    from dynaconf import Dynaconf

    env = os.environ if environ is None else environ

    # Dynaconf silently accepts missing files
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    # An explicit mapping replaces the process environment entirely
    loader_options: dict[str, Any] = {"loaders": []} if environ is not None else {}
    dynaconf_settings = Dynaconf(
        envvar_prefix=ENV_PREFIX,
        settings_files=[str(config_path)] if config_path is not None else [],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
        **loader_options,
    )
    if environ is not None:
        prefix = f"{ENV_PREFIX}_"
        for key, value in environ.items():
            if key.startswith(prefix) and value:
                dynaconf_settings.set(key[len(prefix):], value, tomlfy=True)

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = _lower_keys({k: v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys})
    raw_config = _expand_env_vars(raw_config, env)

    if not raw_config.get("api_key") and env.get("HONEYCOMB_API_KEY"):
        raw_config["api_key"] = env["HONEYCOMB_API_KEY"]
    if "dataset" not in raw_config and env.get("HONEYCOMB_DATASET"):
        raw_config["dataset"] = env["HONEYCOMB_DATASET"]

    return TracingSettings(**raw_config)
