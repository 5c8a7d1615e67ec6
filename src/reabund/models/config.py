"""
Pydantic configuration models for reabund.

These models define the parameters of abundance estimation and of
distribution model building. Configuration can be loaded from YAML files
and overridden by CLI arguments.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from reabund.core.exceptions import ReabundError
from reabund.core.taxonomy import normalize_level

logger = logging.getLogger(__name__)

OutputFormatName = Literal["tsv", "csv", "parquet", "json"]
TrainingFormat = Literal["kraken-cnts", "reads-tsv"]


class EstimationConfig(BaseModel):
    """
    Configuration for abundance estimation.

    Attributes:
        level: Target rank as name or Kraken code; stored as the code.
        threshold: Minimum estimated reads for a taxon to be reported.
            Taxa below it are removed and their reads reallocated to
            surviving relatives. 0 disables filtering.
        output_format: Format of the corrected abundance report.
        threads: Samples estimated concurrently.
    """

    level: str = Field(default="S", description="Target rank (e.g. S, G, species)")
    threshold: int = Field(
        default=0,
        ge=0,
        description="Minimum estimated reads per reported taxon (0 = disabled)",
    )
    output_format: OutputFormatName = Field(default="tsv")
    threads: int = Field(default=1, ge=1)

    model_config = {"frozen": True}

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        try:
            return normalize_level(value)
        except ReabundError as e:
            raise ValueError(e.message) from e

    @classmethod
    def from_yaml(cls, path: Path) -> EstimationConfig:
        """
        Load estimation configuration from the 'estimation' section of a YAML file.

        Unknown keys are ignored.

        Raises:
            ValueError: If the YAML is not a mapping or holds invalid values.
        """
        section = _load_section(path, "estimation")
        return cls(**{k: v for k, v in section.items() if k in cls.model_fields})

    def to_yaml_str(self) -> str:
        import yaml

        return yaml.dump({"estimation": self.model_dump()}, default_flow_style=False, sort_keys=False)

    def to_yaml(self, path: Path) -> None:
        path.write_text(self.to_yaml_str())


class BuildConfig(BaseModel):
    """
    Configuration for building a read distribution model.

    Attributes:
        read_length: Length of the simulated reads (provenance only).
        kmer_length: k-mer length of the classifier database (provenance only).
        min_training_reads: Taxa with fewer simulated reads are excluded.
        training_format: Layout of the training tally file.
        threads: Worker threads used to build entries.
    """

    read_length: int | None = Field(default=None, ge=1)
    kmer_length: int | None = Field(default=None, ge=1)
    min_training_reads: int = Field(default=1, ge=1)
    training_format: TrainingFormat = Field(default="kraken-cnts")
    threads: int = Field(default=1, ge=1)

    model_config = {"frozen": True}

    @classmethod
    def from_yaml(cls, path: Path) -> BuildConfig:
        section = _load_section(path, "build")
        return cls(**{k: v for k, v in section.items() if k in cls.model_fields})

    def to_yaml_str(self) -> str:
        import yaml

        return yaml.dump({"build": self.model_dump()}, default_flow_style=False, sort_keys=False)


def _load_section(path: Path, section: str) -> dict[str, Any]:
    """Read one top-level section of a YAML config file."""
    import yaml

    raw = yaml.safe_load(path.read_text())
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        msg = f"YAML config must be a mapping, got {type(raw).__name__}"
        raise ValueError(msg)
    value = raw.get(section, {})
    if not isinstance(value, dict):
        msg = f"'{section}' section of {path} must be a mapping"
        raise ValueError(msg)
    return value
