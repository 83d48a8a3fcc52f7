"""
Pydantic configuration models for micrite.

These models define the read-quality triage thresholds, hit-calling
thresholds and external tool settings for a screening run. Configuration
can be loaded from YAML files or built from CLI arguments.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from micrite.core.alignment import AlignmentRecord
from micrite.core.constants import (
    DEFAULT_DEACON_ABSOLUTE_THRESHOLD,
    DEFAULT_DEACON_RELATIVE_THRESHOLD,
    DEFAULT_KRAKEN_CONFIDENCE,
    DEFAULT_KRAKEN_THREADS,
    DEFAULT_MAX_N,
    DEFAULT_MIN_ALIGNMENT_SCORE,
    DEFAULT_MIN_LENGTH,
    DEFAULT_MIN_MAPQ,
    DEFAULT_MIN_PERCENT,
    DEFAULT_MIN_PHRED,
    DEFAULT_MIN_READS,
)
from micrite.core.exceptions import ConfigurationError, InputNotFoundError
from micrite.core.read_quality import is_good_quality_alignment, is_good_quality_sequence

logger = logging.getLogger(__name__)


class ReadQualityConfig(BaseModel):
    """
    Thresholds for read-quality triage.

    The sequence thresholds (length, phred, ambiguous bases) decide which
    reads are written to the FASTA for classification. The alignment
    thresholds (mapq, alignment score) additionally decide which reads on
    microbial contigs count as good quality alignments.

    Boundaries:
        - length >= min_length
        - mean phred >= min_phred
        - N count <= max_n
        - mapq > min_mapq (strict)
        - AS > min_alignment_score (strict)
    """

    min_length: int = Field(
        default=DEFAULT_MIN_LENGTH,
        ge=0,
        description="Minimum read length in bases",
    )
    min_phred: float = Field(
        default=DEFAULT_MIN_PHRED,
        ge=0,
        description="Minimum mean per-base phred score",
    )
    max_n: int = Field(
        default=DEFAULT_MAX_N,
        ge=0,
        description="Maximum number of ambiguous (N) bases",
    )
    min_mapq: int = Field(
        default=DEFAULT_MIN_MAPQ,
        ge=0,
        le=255,
        description="Mapping quality must be strictly greater than this",
    )
    min_alignment_score: int = Field(
        default=DEFAULT_MIN_ALIGNMENT_SCORE,
        description="AS tag must be strictly greater than this",
    )

    def passes_sequence(self, record: AlignmentRecord) -> bool:
        """Apply is_good_quality_sequence with these thresholds."""
        return is_good_quality_sequence(
            record, self.min_length, self.min_phred, self.max_n
        )

    def passes_alignment(self, record: AlignmentRecord) -> bool:
        """Apply is_good_quality_alignment with these thresholds."""
        return is_good_quality_alignment(
            record,
            self.min_length,
            self.min_phred,
            self.max_n,
            self.min_mapq,
            self.min_alignment_score,
        )

    model_config = {"frozen": True}


class HitThresholds(BaseModel):
    """
    Thresholds for calling microbial hits from a Kraken2 report.

    A taxon is a hit when its clade read count is strictly greater than
    ``min_reads`` and its clade percentage is at least ``min_percent``.
    With ``oncogenic_only`` set, hits outside the oncogenic allow-list are
    dropped and counted as excluded.
    """

    min_reads: int = Field(
        default=DEFAULT_MIN_READS,
        ge=0,
        description="Clade read count must be strictly greater than this",
    )
    min_percent: float = Field(
        default=DEFAULT_MIN_PERCENT,
        ge=0,
        le=100,
        description="Minimum clade percentage of classified reads (inclusive)",
    )
    oncogenic_only: bool = Field(
        default=False,
        description="Only report microbes on the oncogenic allow-list",
    )

    model_config = {"frozen": True}


class KrakenConfig(BaseModel):
    """
    Configuration for Kraken2 classification of triaged reads.

    Attributes:
        database: Kraken2 database directory (``~`` and env vars expanded)
        threads: Number of CPU threads
        confidence: Kraken2 confidence score threshold (0-1)
        keep_classification_output: Keep the per-read output (.kout.tsv).
            Large, but needed to pull out taxid-specific reads later.
        report_zero_counts: Include taxa with no reads in the report
    """

    database: Path = Field(description="Path to Kraken2 database directory")
    threads: int = Field(default=DEFAULT_KRAKEN_THREADS, ge=1, description="CPU threads")
    confidence: float = Field(
        default=DEFAULT_KRAKEN_CONFIDENCE,
        ge=0,
        le=1,
        description="Kraken2 confidence threshold",
    )
    keep_classification_output: bool = Field(
        default=False,
        description="Write per-read classifications to {prefix}.kout.tsv",
    )
    report_zero_counts: bool = Field(
        default=False,
        description="Include taxa with zero reads in the report",
    )

    model_config = {"frozen": True}


class DeaconConfig(BaseModel):
    """
    Configuration for Deacon host read depletion.

    Attributes:
        database: Deacon minimizer index (e.g. panhuman-1)
        relative_threshold: Minimum proportion (0-1) of minimizer hits for a match
        absolute_threshold: Minimum absolute number of minimizer hits for a match
    """

    database: Path = Field(description="Path to Deacon minimizer index")
    relative_threshold: float = Field(
        default=DEFAULT_DEACON_RELATIVE_THRESHOLD,
        ge=0,
        le=1,
        description="Deacon -r/--rel-threshold",
    )
    absolute_threshold: int = Field(
        default=DEFAULT_DEACON_ABSOLUTE_THRESHOLD,
        ge=1,
        description="Deacon -a/--abs-threshold",
    )

    model_config = {"frozen": True}


class ScreenConfig(BaseModel):
    """
    Complete configuration for screening one BAM file.

    Host depletion runs only when ``deacon`` is set. The triage FASTA is
    deleted after classification unless ``keep_unmapped`` is set.
    """

    quality: ReadQualityConfig = Field(default_factory=ReadQualityConfig)
    hits: HitThresholds = Field(default_factory=HitThresholds)
    kraken: KrakenConfig
    deacon: DeaconConfig | None = None
    keep_unmapped: bool = Field(
        default=False,
        description="Keep the triage FASTA after classification",
    )
    samtools_threads: int = Field(
        default=1,
        ge=1,
        description="Decompression threads for samtools view",
    )

    @field_validator("deacon", mode="before")
    @classmethod
    def empty_deacon_is_none(cls, v: Any) -> Any:
        """Treat an empty ``deacon:`` YAML section as disabled."""
        if v == {}:
            return None
        return v

    @classmethod
    def from_yaml(cls, path: Path, **overrides: Any) -> ScreenConfig:
        """
        Load screening configuration from a YAML file.

        The YAML mirrors the model structure::

            quality:
              min_length: 50
              min_phred: 17.0
            hits:
              min_reads: 50
              oncogenic_only: true
            kraken:
              database: ~/databases/k2_standard_08gb
            deacon:
              database: ~/databases/panhuman-1.k31w15.idx

        Args:
            path: Path to YAML configuration file.
            **overrides: Top-level values replacing those from the file.
                Mapping values are merged into the matching section.

        Raises:
            InputNotFoundError: If the file does not exist.
            ConfigurationError: If the YAML is not a mapping or values are invalid.
        """
        import yaml

        if not path.exists():
            raise InputNotFoundError(path, what="Config file")

        try:
            raw = yaml.safe_load(path.read_text())
        except yaml.YAMLError as e:
            raise ConfigurationError(
                message=f"Could not parse YAML config {path}: {e}",
                suggestion="Check the file is valid YAML.",
            ) from e

        if not isinstance(raw, dict):
            raise ConfigurationError(
                message=f"YAML config must be a mapping, got {type(raw).__name__}",
                suggestion="Top-level keys: quality, hits, kraken, deacon, keep_unmapped.",
            )

        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(raw.get(key), dict):
                raw[key] = {**raw[key], **value}
            else:
                raw[key] = value

        logger.debug("Loaded configuration from %s", path)
        try:
            return cls(**raw)
        except ValidationError as e:
            raise ConfigurationError(
                message=f"Invalid configuration in {path}:\n{e}",
                suggestion="Fix the listed fields or remove them to use defaults.",
            ) from e

    def to_yaml_str(self) -> str:
        """Serialize the configuration to a YAML string."""
        import yaml

        data = self.model_dump(mode="json")
        return yaml.dump(data, default_flow_style=False, sort_keys=False)

    model_config = {"frozen": True}
