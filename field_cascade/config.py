"""
Configuration for the trust cascade.

Supports:
- Loading config from YAML
- Merging overrides (CLI flags, tests)
- Config validation with Pydantic
- Config hashing so a run's decisions can be tied to its settings
"""

import hashlib
import logging
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from .classify.consensus import SourceWeights
from .errors import ConfigError

logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic Config Models
# =============================================================================


class ThresholdConfig(BaseModel):
    """Similarity/score cut-offs per signal."""

    question_bank: float = 0.82  # Nearest known question, Tier 2 candidate
    centroid: float = 0.85  # Embedding centroid as a consensus voter
    centroid_standalone: float = 0.60  # Embedding centroid with no oracle available
    zero_shot: float = 0.85  # Zero-shot as a consensus voter
    zero_shot_standalone: float = 0.45  # Zero-shot with no oracle available
    dedup: float = 0.95  # Question-bank near-duplicate cut-off


class ConsensusConfig(BaseModel):
    """Weighted voting settings."""

    threshold: float = 0.85
    agreement_boost: float = 0.02  # Per agreeing voter, unanimous votes only
    min_voters: int = 2
    weights: SourceWeights = Field(default_factory=SourceWeights)


class OracleConfig(BaseModel):
    """Paid verification/classification calls."""

    enabled: bool = True
    provider: Optional[str] = None  # openai | anthropic (auto-detected from model if None)
    verify_model: str = "claude-haiku-4-5-20251001"
    classify_model: str = "claude-opus-4-5-20251101"
    timeout_seconds: float = 30.0
    requests_per_minute: Optional[int] = None  # Max requests per minute (None = no limit)
    use_for_guard: bool = True  # Let the textarea guard re-derive via the oracle

    # Cost estimate per call (USD)
    cost_per_verify: float = 0.001
    cost_per_classify: float = 0.015


class EmbeddingConfig(BaseModel):
    """Embedding signal (centroids and question bank)."""

    enabled: bool = True
    provider: str = "local"  # local | openai
    model: Optional[str] = None  # Defaults to best for provider


class ZeroShotConfig(BaseModel):
    """NLI zero-shot signal."""

    enabled: bool = True
    model: str = "cross-encoder/nli-deberta-v3-base"


class StoreConfig(BaseModel):
    """Persisted stores and learning policy."""

    cache_dir: Optional[str] = "cache"  # None = memory only
    seed_path: Optional[str] = None  # Question-bank seed for first run
    review_mode: bool = True  # Queue learned associations for human review
    auto_verify: bool = False  # Bootstrap: learned entries are verified immediately


class CascadeConfig(BaseModel):
    """Complete cascade configuration."""

    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)
    consensus: ConsensusConfig = Field(default_factory=ConsensusConfig)
    oracle: OracleConfig = Field(default_factory=OracleConfig)
    embeddings: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    zero_shot: ZeroShotConfig = Field(default_factory=ZeroShotConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)

    def config_hash(self) -> str:
        """
        Generate hash of config for reproducibility tracking.

        Returns:
            SHA256 hash of serialized config (first 12 chars)
        """
        return hashlib.sha256(self.model_dump_json().encode()).hexdigest()[:12]


# =============================================================================
# Config Loading Functions
# =============================================================================


def load_yaml(path: Union[str, Path]) -> dict[str, Any]:
    """Load YAML file and return as dict."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Override values take precedence. Nested dicts are merged recursively.
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> CascadeConfig:
    """
    Load cascade configuration.

    Args:
        config_path: YAML file; None uses defaults
        overrides: Nested dict merged over the file contents

    Returns:
        CascadeConfig with all settings resolved

    Raises:
        ConfigError: the merged settings do not validate
    """
    config_dict = load_yaml(config_path) if config_path else {}
    if overrides:
        config_dict = deep_merge(config_dict, overrides)

    try:
        config = CascadeConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigError(f"Invalid config{f' in {config_path}' if config_path else ''}: {e}") from e

    logger.info(f"Loaded config: {config_path or 'defaults'} (hash: {config.config_hash()})")
    return config


def save_config(config: CascadeConfig, output_path: Union[str, Path]) -> Path:
    """Save resolved config to YAML file."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", encoding="utf-8") as f:
        yaml.dump(config.model_dump(), f, default_flow_style=False, sort_keys=False)

    logger.info(f"Saved config to {output_path}")
    return output_path


# =============================================================================
# Config Validation
# =============================================================================


def validate_config(config: CascadeConfig) -> list[str]:
    """
    Validate config and return list of warnings/issues.

    Returns:
        List of warning messages (empty if all good)
    """
    warnings = []

    for name, value in config.thresholds.model_dump().items():
        if not 0.0 <= value <= 1.0:
            warnings.append(f"thresholds.{name}={value} is outside [0, 1]")

    if config.consensus.threshold < 0.80:
        warnings.append(
            f"consensus.threshold={config.consensus.threshold} is low, "
            "weak signals may reach the verification call"
        )

    if config.consensus.min_voters < 2:
        warnings.append("consensus.min_voters < 2 lets a single signal reach verification")

    if config.thresholds.dedup < config.thresholds.question_bank:
        warnings.append(
            f"thresholds.dedup={config.thresholds.dedup} is below "
            f"thresholds.question_bank={config.thresholds.question_bank}"
        )

    if config.store.auto_verify and config.store.review_mode:
        warnings.append("store.auto_verify is on: learned cache entries skip human review")

    if config.store.cache_dir is None:
        warnings.append("store.cache_dir is not set: nothing learned will persist")

    if config.oracle.enabled and config.oracle.timeout_seconds <= 0:
        warnings.append("oracle.timeout_seconds must be positive")

    return warnings
