"""Configuration loading and validation."""

import logging
import os
import shlex
from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .task import MAX_TOTAL_ATTEMPTS, TIER_ORDER, Tier
from ..errors import ConfigError

logger = logging.getLogger(__name__)


class LLMConfig(BaseModel):
    """Connection settings for the OpenAI-compatible model endpoint."""
    api_base: str = Field(default_factory=lambda: os.environ.get("LITELLM_URL", "http://localhost:4000/v1"))
    api_key: str = Field(default_factory=lambda: os.environ.get("LITELLM_API_KEY", "dev-key"))

    # litellm routes "openai" provider calls to any OpenAI-compatible api_base
    provider: str = "openai"

    temperature: float = 0.2
    max_tokens: int = 4096
    timeout: int = 300

    @field_validator('api_base')
    @classmethod
    def validate_api_base(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(
                f"api_base must start with http:// or https://, got '{v}'"
            )
        return v

    @field_validator('max_tokens', 'timeout')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"must be positive, got {v}")
        return v


class TierConfig(BaseModel):
    """Per-tier model identifier and admission limit."""
    model: str
    max_concurrency: int

    @field_validator('max_concurrency')
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {v}")
        return v


def _default_tiers() -> Dict[Tier, TierConfig]:
    return {
        Tier.FAST: TierConfig(model="fast-coder", max_concurrency=4),
        Tier.DEEP: TierConfig(model="deep-coder", max_concurrency=1),
        Tier.REVIEWER: TierConfig(model="reviewer", max_concurrency=2),
    }


class PolicyConfig(BaseModel):
    """Attempt budgets and initial-tier thresholds."""
    max_attempts_per_tier: int = 2
    max_total_attempts: int = MAX_TOTAL_ATTEMPTS
    deep_file_threshold: int = 5  # more files than this starts at "deep"
    deep_description_threshold: int = 1000  # longer descriptions start at "deep"

    @model_validator(mode='after')
    def validate_budgets(self) -> 'PolicyConfig':
        if self.max_attempts_per_tier < 1:
            raise ValueError("max_attempts_per_tier must be >= 1")
        if self.max_total_attempts < 1:
            raise ValueError("max_total_attempts must be >= 1")
        if self.max_total_attempts > self.max_attempts_per_tier * len(TIER_ORDER):
            logger.warning(
                f"max_total_attempts={self.max_total_attempts} exceeds what the tier ladder "
                f"can use ({self.max_attempts_per_tier} x {len(TIER_ORDER)} tiers); "
                "tasks will abort on the last tier first."
            )
        return self


class PatchConfig(BaseModel):
    """Patch size cap and the utility used to apply diffs."""
    max_patch_lines: int = 300
    command: List[str] = Field(
        default_factory=lambda: ["patch", "-p1", "--forward", "--no-backup-if-mismatch"]
    )
    timeout: int = 60


class VerificationConfig(BaseModel):
    """Check suite run against the workspace after every applied patch."""
    commands: List[str] = Field(
        default_factory=lambda: ["bun run typecheck", "bun run lint", "bun run build"]
    )
    timeout: int = 60  # seconds, per command
    env: Dict[str, str] = Field(default_factory=lambda: {"CI": "true"})

    @field_validator('commands')
    @classmethod
    def validate_commands(cls, v: List[str]) -> List[str]:
        for command in v:
            try:
                argv = shlex.split(command)
            except ValueError as e:
                raise ValueError(f"verification command {command!r} cannot be parsed: {e}")
            if not argv:
                raise ValueError("verification commands must not be blank")
        return v

    @field_validator('timeout')
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"verification timeout must be positive, got {v}")
        return v


class LoggingConfig(BaseModel):
    """Log output settings."""
    level: str = "INFO"
    json_format: bool = False
    session_logs: bool = True
    logs_dir: Path = Field(default=Path("logs"))


class OrchestratorConfig(BaseSettings):
    """Main orchestrator configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    llm: LLMConfig = Field(default_factory=LLMConfig)
    tiers: Dict[Tier, TierConfig] = Field(default_factory=_default_tiers)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    patch: PatchConfig = Field(default_factory=PatchConfig)
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode='after')
    def validate_tiers(self) -> 'OrchestratorConfig':
        missing = [t.value for t in TIER_ORDER if t not in self.tiers]
        if missing:
            raise ValueError(f"tiers missing configuration for: {', '.join(missing)}")
        return self

    def model_for(self, tier: Tier) -> str:
        return self.tiers[tier].model


# Module-level mtime-based config cache: path -> (parsed_config, file_mtime)
_config_cache: Dict[str, tuple] = {}


def _get_cached_or_load(resolved_path: Path, loader):
    """Return cached config if file mtime unchanged, else reload."""
    key = str(resolved_path)
    try:
        current_mtime = resolved_path.stat().st_mtime
    except FileNotFoundError:
        _config_cache.pop(key, None)
        return None

    cached = _config_cache.get(key)
    if cached is not None:
        cached_result, cached_mtime = cached
        if cached_mtime == current_mtime:
            return cached_result

    result = loader(resolved_path)
    _config_cache[key] = (result, current_mtime)
    return result


def _load_config_from_file(config_path: Path) -> OrchestratorConfig:
    """Internal loader for orchestrator config (no caching)."""
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level")

    data = _expand_env_vars(data)
    try:
        return OrchestratorConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}:\n{e}") from e


def load_config(config_path: Path = Path("orchestrator.yaml")) -> OrchestratorConfig:
    """Load orchestrator configuration from YAML file.

    Uses mtime-based caching: returns the cached config if the file hasn't changed.
    A missing file yields the defaults.
    """
    if not config_path.exists():
        logger.warning(
            f"Config file not found: {config_path}. Using default configuration."
        )
        return OrchestratorConfig()

    resolved = config_path.resolve()
    result = _get_cached_or_load(resolved, _load_config_from_file)
    return result if result is not None else OrchestratorConfig()


def clear_config_cache() -> None:
    """Clear the module-level config cache. Useful for tests."""
    _config_cache.clear()


def _expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ${VAR} references in config data.

    Args:
        data: Config data to process
        _path: Internal tracking for error messages (e.g., "llm.api_key")
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v, f"{_path}.{k}" if _path else k) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item, f"{_path}[{i}]") for i, item in enumerate(data)]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        env_var = data[2:-1]
        value = os.environ.get(env_var)
        if value is None:
            logger.warning(
                f"Environment variable '{env_var}' not set (referenced at config path: {_path or 'root'}). "
                f"The literal string '{data}' will be used, which may cause errors."
            )
            return data
        return value
    return data
