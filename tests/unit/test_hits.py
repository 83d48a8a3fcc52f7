"""Unit tests for Kraken2 report parsing and hit calling."""

from __future__ import annotations

from pathlib import Path

import polars as pl
import pytest

from micrite.core.annotations import OncogenicMicrobeTable
from micrite.core.exceptions import InputNotFoundError, MalformedReportError, OutputWriteError
from micrite.core.hits import HitCaller, HitCallResult, hits_path_for, write_hit_table
from micrite.external.kraken import KrakenReport, ReportRow, parse_report_line
from micrite.models.config import HitThresholds


def row(clade_percent: float, clade_reads: int, taxid: str = "9999", name: str = "Foo") -> ReportRow:
    return ReportRow(
        clade_percent=clade_percent,
        clade_reads=clade_reads,
        taxon_reads=clade_reads,
        rank="S",
        taxid=taxid,
        name=name,
    )


class TestParseReportLine:
    """Tests for Kraken2 report line parsing."""

    def test_strips_indentation(self):
        parsed = parse_report_line("  1.50\t15\t15\tS\t10376\t        Human gammaherpesvirus 4\n")
        assert parsed == ReportRow(1.5, 15, 15, "S", "10376", "Human gammaherpesvirus 4")

    def test_rank_with_depth(self):
        assert parse_report_line("0.10\t1\t0\tG2\t123\tSomething\n").rank == "G2"

    def test_wrong_column_count(self):
        with pytest.raises(ValueError, match="expected 6 columns, got 8"):
            parse_report_line("1.0\t10\t10\t100\t90\tS\t9999\tFoo\n")

    def test_non_numeric_reads(self):
        with pytest.raises(ValueError):
            parse_report_line("1.0\tten\t10\tS\t9999\tFoo\n")


class TestKrakenReport:
    """Tests for streaming report rows from a file."""

    def test_rows_in_file_order(self, kraken_report: Path):
        rows = list(KrakenReport(kraken_report))
        assert [r.taxid for r in rows] == ["0", "1", "10239", "10376", "10566", "12345", "562"]

    def test_blank_lines_skipped(self, tmp_path: Path):
        path = tmp_path / "r.kreport"
        path.write_text("1.0\t10\t10\tS\t9999\tFoo\n\n")
        assert len(list(KrakenReport(path).rows())) == 1

    def test_missing_report(self, tmp_path: Path):
        with pytest.raises(InputNotFoundError):
            list(KrakenReport(tmp_path / "missing.kreport").rows())

    def test_malformed_row_reports_line(self, tmp_path: Path):
        path = tmp_path / "r.kreport"
        path.write_text("1.0\t10\t10\tS\t9999\tFoo\n1.0\t10\tS\t9999\tFoo\n")
        with pytest.raises(MalformedReportError) as exc_info:
            list(KrakenReport(path).rows())
        assert exc_info.value.line_num == 2
        assert "6 tab-separated columns" in exc_info.value.suggestion


class TestThresholds:
    """Tests for the read and percent threshold boundaries."""

    def test_min_reads_is_exclusive(self):
        caller = HitCaller(HitThresholds(min_reads=50, min_percent=0.0))
        assert not caller.passes_thresholds(row(1.0, 50))
        assert caller.passes_thresholds(row(1.0, 51))

    def test_min_percent_is_inclusive(self):
        caller = HitCaller(HitThresholds(min_reads=0, min_percent=0.01))
        assert caller.passes_thresholds(row(0.01, 100))
        assert not caller.passes_thresholds(row(0.009, 100))

    def test_zero_reads_never_hit(self):
        caller = HitCaller(HitThresholds(min_reads=0, min_percent=0.0))
        assert not caller.passes_thresholds(row(0.0, 0))


class TestHitCaller:
    """Tests for HitCaller.call and call_report."""

    def test_all_microbes(self, kraken_report: Path, tmp_path: Path):
        caller = HitCaller(HitThresholds(min_reads=50, min_percent=0.01))
        result = caller.call_report(kraken_report, tmp_path / "hits.csv")

        assert [h.taxid for h in result.hits] == ["0", "1", "10239", "10376", "10566", "562"]
        assert result.n_non_oncogenic_excluded == 0
        oncogenic = {h.taxid: h.oncogenic for h in result.hits}
        assert oncogenic["10376"] is True
        assert oncogenic["562"] is False

    def test_oncogenic_only(self, kraken_report: Path, tmp_path: Path):
        caller = HitCaller(HitThresholds(min_reads=50, min_percent=0.01, oncogenic_only=True))
        result = caller.call_report(kraken_report, tmp_path / "hits.csv")

        assert [h.taxid for h in result.hits] == ["10376", "10566"]
        assert all(h.oncogenic for h in result.hits)
        # unclassified, root, Viruses and E. coli pass thresholds but are excluded
        assert result.n_non_oncogenic_excluded == 4

    def test_empty_allow_list_excludes_everything(self):
        """An empty allow-list is used as given, not replaced by the built-in one."""
        caller = HitCaller(
            HitThresholds(min_reads=5, oncogenic_only=True),
            OncogenicMicrobeTable([]),
        )
        result = caller.call([row(5.0, 100, taxid="10376", name="EBV")])

        assert result.hits == []
        assert result.n_non_oncogenic_excluded == 1

    def test_empty_allow_list_marks_nothing_oncogenic(self):
        caller = HitCaller(HitThresholds(min_reads=5), OncogenicMicrobeTable([]))
        result = caller.call([row(5.0, 100, taxid="10376", name="EBV")])
        assert [h.oncogenic for h in result.hits] == [False]

    def test_below_threshold_not_counted_as_excluded(self):
        caller = HitCaller(HitThresholds(min_reads=50, min_percent=0.01, oncogenic_only=True))
        result = caller.call([row(5.0, 10, taxid="562")])
        assert result.hits == []
        assert result.n_non_oncogenic_excluded == 0

    def test_single_hit_csv(self, tmp_path: Path):
        """A 10-read, 2% clade yields exactly one CSV row."""
        report = tmp_path / "s.kreport"
        report.write_text("2.00\t10\t10\tS\t9999\tFoo\n")
        output = tmp_path / "s.krakenhits.csv"

        result = HitCaller(HitThresholds(min_reads=5, min_percent=0.01)).call_report(report, output)

        assert result.n_hits == 1
        assert result.output_path == output
        assert output.read_text().splitlines() == [
            "taxid,rank,name,clade_percent_classified,clade_nreads_classified,oncogenic",
            "9999,S,Foo,2.0,10,false",
        ]

    def test_no_hits_writes_header_only(self, kraken_report: Path, tmp_path: Path):
        output = tmp_path / "hits.csv"
        result = HitCaller(HitThresholds(min_reads=10_000)).call_report(kraken_report, output)

        assert result.n_hits == 0
        assert output.read_text().splitlines() == [
            "taxid,rank,name,clade_percent_classified,clade_nreads_classified,oncogenic",
        ]

    def test_names_with_commas_are_quoted(self, tmp_path: Path):
        report = tmp_path / "s.kreport"
        report.write_text("5.00\t100\t100\tS\t1\tFoo, strain X\n")
        output = tmp_path / "hits.csv"

        HitCaller(HitThresholds(min_reads=5)).call_report(report, output)

        df = pl.read_csv(output)
        assert df["name"].to_list() == ["Foo, strain X"]

    def test_malformed_report_aborts(self, tmp_path: Path):
        report = tmp_path / "s.kreport"
        report.write_text("oops\n")
        with pytest.raises(MalformedReportError):
            HitCaller().call_report(report, tmp_path / "hits.csv")
        assert not (tmp_path / "hits.csv").exists()


class TestHitTable:
    """Tests for the hit table DataFrame and writer."""

    def test_dataframe_schema(self):
        result = HitCaller(HitThresholds(min_reads=5)).call([row(2.0, 10)])
        df = result.to_dataframe()
        assert df.columns == [
            "taxid",
            "rank",
            "name",
            "clade_percent_classified",
            "clade_nreads_classified",
            "oncogenic",
        ]
        assert df.schema["oncogenic"] == pl.Boolean

    def test_unwritable_output(self, tmp_path: Path):
        result = HitCallResult(thresholds=HitThresholds())
        with pytest.raises(OutputWriteError):
            write_hit_table(result, tmp_path / "missing" / "hits.csv")

    def test_hits_path_for(self, tmp_path: Path):
        assert hits_path_for(tmp_path / "sample") == tmp_path / "sample.krakenhits.csv"
