"""
Microbial hit calling from Kraken2 reports.

A report row is a hit when its clade has more than ``min_reads`` reads
(exclusive) and accounts for at least ``min_percent`` of classified reads
(inclusive). With ``oncogenic_only`` set, rows passing both thresholds but
absent from the oncogenic allow-list are counted as excluded instead.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple

import polars as pl

from micrite.core.annotations import OncogenicMicrobeTable, oncogenic_microbes
from micrite.core.constants import HIT_TABLE_COLUMNS, HITS_SUFFIX
from micrite.core.exceptions import OutputWriteError
from micrite.external.kraken import KrakenReport, ReportRow
from micrite.models.config import HitThresholds

logger = logging.getLogger(__name__)

HIT_TABLE_SCHEMA: dict[str, pl.DataType] = {
    "taxid": pl.Utf8,
    "rank": pl.Utf8,
    "name": pl.Utf8,
    "clade_percent_classified": pl.Float64,
    "clade_nreads_classified": pl.Int64,
    "oncogenic": pl.Boolean,
}


class KrakenHit(NamedTuple):
    """One reportable microbe."""

    taxid: str
    rank: str
    name: str
    clade_percent_classified: float
    clade_nreads_classified: int
    oncogenic: bool


@dataclass
class HitCallResult:
    """Hits and counters from one report scan."""

    thresholds: HitThresholds
    hits: list[KrakenHit] = field(default_factory=list)
    n_non_oncogenic_excluded: int = 0
    output_path: Path | None = None

    @property
    def n_hits(self) -> int:
        return len(self.hits)

    def to_dataframe(self) -> pl.DataFrame:
        """Hits as a DataFrame with the hit table columns."""
        return pl.DataFrame(
            {col: [getattr(hit, col) for hit in self.hits] for col in HIT_TABLE_COLUMNS},
            schema=HIT_TABLE_SCHEMA,
        )


def hits_path_for(prefix: Path) -> Path:
    """Hit table path for a Kraken output prefix."""
    return prefix.with_name(prefix.name + HITS_SUFFIX)


class HitCaller:
    """
    Threshold and allow-list filter over Kraken2 report rows.

    Example:
        >>> caller = HitCaller(HitThresholds(min_reads=5, min_percent=0.01))
        >>> result = caller.call_report(Path("sample.kreport"), Path("sample.krakenhits.csv"))
        >>> result.n_hits
        3
    """

    def __init__(
        self,
        thresholds: HitThresholds | None = None,
        oncogenic_table: OncogenicMicrobeTable | None = None,
    ):
        self.thresholds = thresholds or HitThresholds()
        self.oncogenic_table = (
            oncogenic_table if oncogenic_table is not None else oncogenic_microbes()
        )

    def passes_thresholds(self, row: ReportRow) -> bool:
        """Clade reads above min_reads and clade percent at least min_percent."""
        return (
            row.clade_reads > self.thresholds.min_reads
            and row.clade_percent >= self.thresholds.min_percent
        )

    def call(self, rows: Iterable[ReportRow]) -> HitCallResult:
        """Scan report rows in order and collect hits."""
        result = HitCallResult(thresholds=self.thresholds)

        for row in rows:
            is_oncogenic = row.taxid in self.oncogenic_table

            if not self.passes_thresholds(row):
                continue

            if self.thresholds.oncogenic_only and not is_oncogenic:
                result.n_non_oncogenic_excluded += 1
                continue

            result.hits.append(
                KrakenHit(
                    taxid=row.taxid,
                    rank=row.rank,
                    name=row.name,
                    clade_percent_classified=row.clade_percent,
                    clade_nreads_classified=row.clade_reads,
                    oncogenic=is_oncogenic,
                )
            )
            logger.info(
                "Found %d reads from microbe [%s] (%4.1f%% of classified reads)",
                row.clade_reads,
                row.name,
                row.clade_percent,
            )

        return result

    def call_report(self, report_path: Path, output_path: Path) -> HitCallResult:
        """
        Call hits from a Kraken2 report and write the hit table.

        Args:
            report_path: Kraken2 report (.kreport).
            output_path: CSV hit table to write.

        Returns:
            HitCallResult with hits and counters.

        Raises:
            InputNotFoundError: If the report does not exist.
            MalformedReportError: If a report row cannot be parsed.
            OutputWriteError: If the hit table cannot be written.
        """
        oncogenic_text = " (oncogenic only) " if self.thresholds.oncogenic_only else " "
        logger.info(
            "Checking kraken report for microbes%swith > %d supporting reads "
            "& >= %.2f%% of classified reads",
            oncogenic_text,
            self.thresholds.min_reads,
            self.thresholds.min_percent,
        )

        result = self.call(KrakenReport(report_path).rows())
        write_hit_table(result, output_path)
        result.output_path = output_path

        if self.thresholds.oncogenic_only and result.n_non_oncogenic_excluded > 0:
            logger.info(
                "Skipped reporting %d microbes despite read support passing thresholds "
                "because they are not in the oncogenic microbe list",
                result.n_non_oncogenic_excluded,
            )
        logger.info("Found %d suspected microbial hits%s", result.n_hits, oncogenic_text.rstrip())
        logger.info("Putative kraken hits written to %s", output_path)

        return result


def write_hit_table(result: HitCallResult, output_path: Path) -> None:
    """Write hits as CSV with columns in HIT_TABLE_COLUMNS order."""
    df = result.to_dataframe()
    try:
        with output_path.open("w", newline="") as f:
            df.write_csv(f)
    except OSError as e:
        raise OutputWriteError(output_path, str(e)) from e
