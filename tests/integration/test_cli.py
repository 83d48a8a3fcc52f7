"""
Integration tests for the micrite CLI.

Tests the command-line interface using Typer's CliRunner for:
- Main entry point and version display
- screen hits on real report files
- screen triage and screen run with external tools faked
- Error reporting and exit codes
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from micrite import __version__
from micrite.cli.main import app
from micrite.core.hits import HitCallResult
from micrite.core.pipeline import ScreenResult
from micrite.core.triage import SummaryStats, TriageResult
from micrite.external.base import ExternalTool, ToolExecutionError
from micrite.external.kraken import KrakenOutputPaths
from micrite.models.config import HitThresholds

runner = CliRunner()


@pytest.fixture
def bam_file(tmp_path: Path) -> Path:
    bam = tmp_path / "sample.bam"
    bam.write_bytes(b"BAM\x01")
    (tmp_path / "sample.bam.bai").write_bytes(b"BAI\x01")
    return bam


@pytest.fixture
def kraken_db(tmp_path: Path) -> Path:
    db = tmp_path / "k2db"
    db.mkdir()
    return db


class TestMainApp:
    """Tests for the top-level app."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_help_lists_screen(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "screen" in result.stdout

    def test_screen_help(self):
        result = runner.invoke(app, ["screen", "--help"])
        assert result.exit_code == 0
        for command in ("run", "triage", "hits", "contigs"):
            assert command in result.stdout


class TestContigsCommand:
    """Tests for screen contigs."""

    def test_lists_tables(self):
        result = runner.invoke(app, ["screen", "contigs"])
        assert result.exit_code == 0
        assert "chrEBV" in result.stdout
        assert "493803" in result.stdout


class TestHitsCommand:
    """Tests for screen hits."""

    def test_default_output_next_to_report(self, kraken_report: Path):
        result = runner.invoke(
            app,
            ["screen", "hits", "--report", str(kraken_report), "--oncogenic-only", "--quiet"],
        )

        assert result.exit_code == 0, result.stdout
        hits = kraken_report.with_name("sample.krakenhits.csv")
        lines = hits.read_text().splitlines()
        assert lines[0].startswith("taxid,rank,name")
        assert [line.split(",")[0] for line in lines[1:]] == ["10376", "10566"]

    def test_explicit_output_and_thresholds(self, tmp_path: Path):
        report = tmp_path / "s.kreport"
        report.write_text("2.00\t10\t10\tS\t9999\tFoo\n")
        output = tmp_path / "hits.csv"

        result = runner.invoke(
            app,
            [
                "screen", "hits",
                "--report", str(report),
                "--output", str(output),
                "--min-reads", "5",
                "--min-percent", "0.01",
            ],
        )

        assert result.exit_code == 0, result.stdout
        assert output.read_text().splitlines()[1] == "9999,S,Foo,2.0,10,false"

    def test_malformed_report(self, tmp_path: Path):
        report = tmp_path / "bad.kreport"
        report.write_text("1.0\t10\tS\t9999\tFoo\n")

        result = runner.invoke(app, ["screen", "hits", "--report", str(report)])

        assert result.exit_code == 1
        assert "Malformed kraken report" in result.stdout

    def test_missing_report(self, tmp_path: Path):
        result = runner.invoke(
            app, ["screen", "hits", "--report", str(tmp_path / "missing.kreport")]
        )
        assert result.exit_code != 0


@pytest.mark.usefixtures("fake_executables")
class TestTriageCommand:
    """Tests for screen triage with an in-memory alignment source."""

    def test_writes_outputs(self, bam_file: Path, ebv_source, tmp_path: Path):
        outdir = tmp_path / "out"
        with patch("micrite.cli.screen.SamtoolsAlignmentSource", return_value=ebv_source):
            result = runner.invoke(
                app,
                ["screen", "triage", "--bam", str(bam_file), "--output", str(outdir)],
            )

        assert result.exit_code == 0, result.stdout
        assert (outdir / "sample.fasta").read_text().count(">") == 4
        summary = (outdir / "sample.bam_summary.txt").read_text()
        assert "Contig [chrEBV] good quality alignments\t1" in summary

    def test_quality_options(self, bam_file: Path, ebv_source, tmp_path: Path):
        outdir = tmp_path / "out"
        with patch("micrite.cli.screen.SamtoolsAlignmentSource", return_value=ebv_source):
            result = runner.invoke(
                app,
                [
                    "screen", "triage",
                    "--bam", str(bam_file),
                    "--output", str(outdir),
                    "--min-length", "70",
                    "--quiet",
                ],
            )

        assert result.exit_code == 0, result.stdout
        assert (outdir / "sample.fasta").read_text().count(">") == 3

    def test_output_under_a_file(self, bam_file: Path, ebv_source, tmp_path: Path):
        """An output path that cannot be created is reported, not a traceback."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with patch("micrite.cli.screen.SamtoolsAlignmentSource", return_value=ebv_source):
            result = runner.invoke(
                app,
                ["screen", "triage", "--bam", str(bam_file), "--output", str(blocker / "out")],
            )

        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "Could not write output" in result.stdout

    def test_missing_samtools(self, bam_file: Path, tmp_path: Path):
        ExternalTool.set_executable_resolver(lambda name: None)
        result = runner.invoke(
            app,
            ["screen", "triage", "--bam", str(bam_file), "--output", str(tmp_path)],
        )
        assert result.exit_code == 1
        assert "samtools not found" in result.stdout


@pytest.fixture
def screen_result(tmp_path: Path) -> ScreenResult:
    """A finished screening result, returned by the faked pipeline."""
    stats = SummaryStats(total_reads=10, total_mapped=8, total_unmapped=2)
    return ScreenResult(
        triage=TriageResult(tmp_path / "sample.fasta", tmp_path / "sample.bam_summary.txt", stats),
        kraken=KrakenOutputPaths(
            kout=None,
            kreport=tmp_path / "sample.kreport",
            input_fasta=tmp_path / "sample.fasta",
            prefix=tmp_path / "sample",
        ),
        hits=HitCallResult(
            thresholds=HitThresholds(),
            output_path=tmp_path / "sample.krakenhits.csv",
        ),
        classified_fasta=tmp_path / "sample.fasta",
    )


@pytest.mark.usefixtures("fake_executables")
class TestRunCommand:
    """Tests for screen run option handling; the pipeline itself is faked."""

    def test_cli_options_build_config(
        self, bam_file: Path, kraken_db: Path, tmp_path: Path, screen_result
    ):
        with patch("micrite.cli.screen.screen_bam", return_value=screen_result) as mock_screen:
            result = runner.invoke(
                app,
                [
                    "screen", "run",
                    "--bam", str(bam_file),
                    "--kraken-db", str(kraken_db),
                    "--output", str(tmp_path / "out"),
                    "--min-reads", "5",
                    "--oncogenic-only",
                    "--max-n", "0",
                    "--threads", "2",
                    "--keep-kraken-output",
                ],
            )

        assert result.exit_code == 0, result.stdout
        config = mock_screen.call_args.args[2]
        assert config.kraken.database == kraken_db
        assert config.kraken.threads == 2
        assert config.kraken.keep_classification_output is True
        assert config.hits.min_reads == 5
        assert config.hits.oncogenic_only is True
        assert config.quality.max_n == 0
        assert config.quality.min_length == 50
        assert config.deacon is None
        assert "Screening complete" in result.stdout

    def test_config_file_with_cli_override(
        self, bam_file: Path, kraken_db: Path, tmp_path: Path, screen_result
    ):
        config_file = tmp_path / "micrite.yaml"
        config_file.write_text(
            yaml.dump(
                {
                    "kraken": {"database": str(kraken_db), "threads": 16},
                    "hits": {"min_reads": 20},
                    "deacon": {"database": str(tmp_path / "panhuman.idx")},
                }
            )
        )

        with patch("micrite.cli.screen.screen_bam", return_value=screen_result) as mock_screen:
            result = runner.invoke(
                app,
                [
                    "screen", "run",
                    "--bam", str(bam_file),
                    "--config", str(config_file),
                    "--output", str(tmp_path / "out"),
                    "--min-percent", "1.5",
                    "--quiet",
                ],
            )

        assert result.exit_code == 0, result.stdout
        config = mock_screen.call_args.args[2]
        assert config.kraken.threads == 16
        assert config.hits.min_reads == 20
        assert config.hits.min_percent == 1.5
        assert config.deacon.database == tmp_path / "panhuman.idx"

    def test_all_microbes_overrides_config_file(
        self, bam_file: Path, kraken_db: Path, tmp_path: Path, screen_result
    ):
        config_file = tmp_path / "micrite.yaml"
        config_file.write_text(
            yaml.dump(
                {
                    "kraken": {"database": str(kraken_db)},
                    "hits": {"oncogenic_only": True},
                }
            )
        )
        args = [
            "screen", "run",
            "--bam", str(bam_file),
            "--config", str(config_file),
            "--output", str(tmp_path / "out"),
            "--quiet",
        ]

        with patch("micrite.cli.screen.screen_bam", return_value=screen_result) as mock_screen:
            from_file = runner.invoke(app, args)
            overridden = runner.invoke(app, [*args, "--all-microbes"])

        assert from_file.exit_code == 0, from_file.stdout
        assert overridden.exit_code == 0, overridden.stdout
        assert mock_screen.call_args_list[0].args[2].hits.oncogenic_only is True
        assert mock_screen.call_args_list[1].args[2].hits.oncogenic_only is False

    def test_requires_kraken_db(self, bam_file: Path, tmp_path: Path):
        result = runner.invoke(
            app,
            ["screen", "run", "--bam", str(bam_file), "--output", str(tmp_path / "out")],
        )
        assert result.exit_code == 1
        assert "No Kraken2 database given" in result.stdout

    def test_pipeline_error_reported(self, bam_file: Path, kraken_db: Path, tmp_path: Path):
        error = ToolExecutionError("kraken2", ["kraken2", "--db", "x"], 2, "database corrupt")
        with patch("micrite.cli.screen.screen_bam", side_effect=error):
            result = runner.invoke(
                app,
                [
                    "screen", "run",
                    "--bam", str(bam_file),
                    "--kraken-db", str(kraken_db),
                    "--output", str(tmp_path / "out"),
                ],
            )

        assert result.exit_code == 1
        assert "kraken2 failed with exit code 2" in result.stdout
