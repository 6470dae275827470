"""Tests for configuration loading and validation."""

import pytest
import yaml

from field_cascade.config import (
    CascadeConfig,
    deep_merge,
    load_config,
    save_config,
    validate_config,
)
from field_cascade.errors import ConfigError


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self):
        """No file, no overrides: documented defaults."""
        config = load_config()
        assert config.thresholds.question_bank == 0.82
        assert config.thresholds.centroid == 0.85
        assert config.consensus.min_voters == 2
        assert config.store.review_mode is True
        assert config.store.auto_verify is False

    def test_yaml_file(self, tmp_path):
        """Values from YAML override defaults; the rest stay."""
        path = tmp_path / "cascade.yaml"
        path.write_text(yaml.safe_dump({
            "thresholds": {"zero_shot": 0.9},
            "oracle": {"verify_model": "gpt-4o-mini"},
        }), encoding="utf-8")

        config = load_config(path)

        assert config.thresholds.zero_shot == 0.9
        assert config.thresholds.centroid == 0.85
        assert config.oracle.verify_model == "gpt-4o-mini"

    def test_overrides_win(self, tmp_path):
        """Overrides are merged over the file."""
        path = tmp_path / "cascade.yaml"
        path.write_text(yaml.safe_dump({"store": {"cache_dir": "a", "auto_verify": True}}), encoding="utf-8")

        config = load_config(path, overrides={"store": {"cache_dir": "b"}})

        assert config.store.cache_dir == "b"
        assert config.store.auto_verify is True

    def test_missing_file(self, tmp_path):
        """A named file must exist."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")

    def test_invalid_values(self):
        """Bad values raise ConfigError."""
        with pytest.raises(ConfigError):
            load_config(overrides={"thresholds": {"centroid": "high"}})

    def test_source_weights(self):
        """Consensus weights are configurable."""
        config = load_config(overrides={"consensus": {"weights": {"embedding": 0.5}}})
        assert config.consensus.weights.embedding == 0.5
        assert config.consensus.weights.pattern == 0.99

    def test_save_round_trip(self, tmp_path):
        """A saved config loads back identically."""
        config = load_config(overrides={"thresholds": {"dedup": 0.97}})
        path = save_config(config, tmp_path / "out" / "cascade.yaml")
        assert load_config(path).config_hash() == config.config_hash()


class TestConfigHash:
    """Tests for config_hash."""

    def test_stable(self):
        """Equal configs hash equally."""
        assert CascadeConfig().config_hash() == CascadeConfig().config_hash()
        assert len(CascadeConfig().config_hash()) == 12

    def test_changes(self):
        """Any setting change changes the hash."""
        changed = load_config(overrides={"consensus": {"threshold": 0.9}})
        assert changed.config_hash() != CascadeConfig().config_hash()


class TestValidateConfig:
    """Tests for validate_config warnings."""

    def test_defaults_clean(self):
        """Defaults produce no warnings."""
        assert validate_config(CascadeConfig()) == []

    def test_warnings(self):
        """Risky settings are reported."""
        config = load_config(overrides={
            "thresholds": {"centroid": 1.5, "dedup": 0.5},
            "consensus": {"min_voters": 1, "threshold": 0.5},
            "store": {"auto_verify": True, "cache_dir": None},
        })
        warnings = "\n".join(validate_config(config))
        assert "thresholds.centroid" in warnings
        assert "thresholds.dedup" in warnings
        assert "min_voters" in warnings
        assert "consensus.threshold" in warnings
        assert "auto_verify" in warnings
        assert "cache_dir" in warnings


class TestDeepMerge:
    """Tests for deep_merge."""

    def test_nested(self):
        """Nested dicts merge; scalars replace."""
        merged = deep_merge({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}, "b": 2})
        assert merged == {"a": {"x": 1, "y": 3}, "b": 2}
