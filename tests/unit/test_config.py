"""
Unit tests for configuration models.

Tests EstimationConfig and BuildConfig validation and YAML serialization.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from reabund.models.config import BuildConfig, EstimationConfig


class TestEstimationConfig:
    """Tests for EstimationConfig model."""

    def test_default_values(self):
        config = EstimationConfig()

        assert config.level == "S"
        assert config.threshold == 0
        assert config.output_format == "tsv"
        assert config.threads == 1

    @pytest.mark.parametrize(("level", "expected"), [("species", "S"), ("g", "G"), ("S1", "S1")])
    def test_level_normalized(self, level: str, expected: str):
        assert EstimationConfig(level=level).level == expected

    def test_invalid_level(self):
        with pytest.raises(ValidationError, match="Unrecognized taxonomic rank"):
            EstimationConfig(level="strain")

    def test_negative_threshold(self):
        with pytest.raises(ValidationError):
            EstimationConfig(threshold=-5)

    def test_unknown_output_format(self):
        with pytest.raises(ValidationError):
            EstimationConfig(output_format="xlsx")

    def test_frozen(self):
        config = EstimationConfig()
        with pytest.raises(ValidationError):
            config.threshold = 10

    def test_yaml_round_trip(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        EstimationConfig(level="genus", threshold=10, output_format="csv").to_yaml(path)

        loaded = EstimationConfig.from_yaml(path)
        assert loaded.level == "G"
        assert loaded.threshold == 10
        assert loaded.output_format == "csv"

    def test_from_yaml_ignores_unknown_keys_and_other_sections(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "estimation:\n"
            "  threshold: 25\n"
            "  colour: blue\n"
            "build:\n"
            "  read_length: 150\n"
        )
        config = EstimationConfig.from_yaml(path)

        assert config.threshold == 25
        assert config.level == "S"

    def test_empty_yaml(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert EstimationConfig.from_yaml(path) == EstimationConfig()

    def test_yaml_must_be_mapping(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValueError, match="mapping"):
            EstimationConfig.from_yaml(path)

    def test_section_must_be_mapping(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("estimation: 5\n")
        with pytest.raises(ValueError, match="'estimation' section"):
            EstimationConfig.from_yaml(path)


class TestBuildConfig:
    """Tests for BuildConfig model."""

    def test_default_values(self):
        config = BuildConfig()

        assert config.read_length is None
        assert config.min_training_reads == 1
        assert config.training_format == "kraken-cnts"

    def test_invalid_values(self):
        with pytest.raises(ValidationError):
            BuildConfig(min_training_reads=0)
        with pytest.raises(ValidationError):
            BuildConfig(training_format="fasta")

    def test_from_yaml(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text(BuildConfig(read_length=150, kmer_length=35, threads=4).to_yaml_str())

        config = BuildConfig.from_yaml(path)
        assert config.read_length == 150
        assert config.kmer_length == 35
        assert config.threads == 4
