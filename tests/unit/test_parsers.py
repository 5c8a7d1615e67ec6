"""
Unit tests for classifier output parsers.

Tests Kraken report parsing and validation, reconstruction of the tree a
report encodes, and the training tally readers.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from reabund.core.exceptions import DistributionError, MalformedReportError
from reabund.core.parsers import (
    ClassificationReport,
    KrakenReportParser,
    read_kraken_counts,
    read_training_reads,
)
from reabund.core.taxonomy import Rank, TaxonomyTree


class TestClassificationReport:
    """Tests for ClassificationReport accessors."""

    def test_totals(self, scenario_report: ClassificationReport):
        assert scenario_report.classified_reads == 180
        assert scenario_report.total_reads == 200
        assert scenario_report.direct(10) == 100
        assert scenario_report.direct(999) == 0

    def test_check_against(
        self, scenario_report: ClassificationReport, scenario_tree: TaxonomyTree
    ):
        scenario_report.check_against(scenario_tree)

        report = ClassificationReport(sample="s", direct_reads={11: 5, 777: 3})
        with pytest.raises(MalformedReportError, match="777"):
            report.check_against(scenario_tree)

    def test_check_against_names_report_file(self, scenario_kreport: Path):
        report = KrakenReportParser(scenario_kreport).parse()
        genus_only = TaxonomyTree.from_records(
            [(1, None, "no rank", "root"), (10, 1, "genus", "Genus")]
        )

        assert report.source == str(scenario_kreport)
        with pytest.raises(MalformedReportError) as exc_info:
            report.check_against(genus_only)
        assert str(scenario_kreport) in exc_info.value.message


class TestKrakenReportParser:
    """Tests for parsing Kraken reports."""

    def test_parse(self, scenario_kreport: Path):
        report = KrakenReportParser(scenario_kreport).parse()

        assert report.sample == "sample"
        assert report.direct_reads == {1: 0, 10: 100, 11: 50, 12: 30}
        assert report.clade_reads[10] == 180
        assert report.unclassified_reads == 20
        assert report.names[11] == "Genus alpha"
        assert report.level_ids[10] == "G"

    def test_sample_name(self, scenario_kreport: Path):
        assert KrakenReportParser(scenario_kreport, sample="S01").parse().sample == "S01"

    def test_parse_checks_tree(self, scenario_kreport: Path):
        small = TaxonomyTree.from_records([(1, None, "no rank", "root")])
        with pytest.raises(MalformedReportError, match="not in the taxonomy"):
            KrakenReportParser(scenario_kreport).parse(small)

    def test_rows(self, scenario_kreport: Path):
        rows = KrakenReportParser(scenario_kreport).rows()

        assert len(rows) == 5
        assert rows[3].taxid == 11
        assert rows[3].depth == 2
        assert rows[3].line_num == 4

    def test_minimizer_columns(self, write_kreport: Callable[..., Path]):
        path = write_kreport(rows=[
            ("50.00", 2, 2, 0, 0, "U", 0, "unclassified"),
            ("50.00", 2, 1, 40, 30, "R", 1, "root"),
            ("25.00", 1, 1, 20, 15, "S", 11, "  Genus alpha"),
        ])
        report = KrakenReportParser(path).parse()

        assert report.direct_reads == {1: 1, 11: 1}
        assert report.unclassified_reads == 2

    def test_comments_and_blank_lines(self, tmp_path: Path):
        path = tmp_path / "sample.kreport"
        path.write_text(
            "# generated by kraken2\n"
            "\n"
            "100.00\t5\t5\tR\t1\troot\n"
        )
        assert KrakenReportParser(path).parse().direct_reads == {1: 5}

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            KrakenReportParser(tmp_path / "absent.kreport").parse()

    def test_per_read_output_rejected(self, tmp_path: Path):
        path = tmp_path / "sample.kraken"
        path.write_text("C\tread1\t562\t150\t562:116\n")
        with pytest.raises(MalformedReportError, match="per-read output"):
            KrakenReportParser(path).parse()

    def test_mpa_report_rejected(self, tmp_path: Path):
        path = tmp_path / "sample.mpa"
        path.write_text("d__Bacteria\t100\n")
        with pytest.raises(MalformedReportError, match="mpa-style"):
            KrakenReportParser(path).parse()

    def test_wrong_column_count(self, tmp_path: Path):
        path = tmp_path / "sample.kreport"
        path.write_text("100.00\t5\t5\tR\troot\n")
        with pytest.raises(MalformedReportError, match="expected 6 or 8 columns"):
            KrakenReportParser(path).parse()

    def test_non_integer_count(self, tmp_path: Path):
        path = tmp_path / "sample.kreport"
        path.write_text("100.00\tfive\t5\tR\t1\troot\n")
        with pytest.raises(MalformedReportError) as exc_info:
            KrakenReportParser(path).parse()
        assert exc_info.value.line_num == 1
        assert "clade_reads" in exc_info.value.reason

    def test_negative_count(self, tmp_path: Path):
        path = tmp_path / "sample.kreport"
        path.write_text("100.00\t5\t-5\tR\t1\troot\n")
        with pytest.raises(MalformedReportError, match="negative"):
            KrakenReportParser(path).parse()

    def test_duplicate_taxid(self, write_kreport: Callable[..., Path]):
        path = write_kreport(rows=[
            ("100.00", 5, 0, "R", 1, "root"),
            ("100.00", 5, 5, "S", 11, "  Genus alpha"),
            ("100.00", 5, 5, "S", 11, "  Genus alpha"),
        ])
        with pytest.raises(MalformedReportError, match="more than once"):
            KrakenReportParser(path).parse()

    def test_empty_report(self, tmp_path: Path):
        path = tmp_path / "empty.kreport"
        path.write_text("")
        with pytest.raises(MalformedReportError, match="no records"):
            KrakenReportParser(path).parse()

    def test_unclassified_only(self, write_kreport: Callable[..., Path]):
        path = write_kreport(rows=[("100.00", 7, 7, "U", 0, "unclassified")])
        parser = KrakenReportParser(path)

        report = parser.parse()
        assert report.direct_reads == {}
        assert report.unclassified_reads == 7

        with pytest.raises(MalformedReportError, match="only unclassified"):
            parser.build_tree()


class TestBuildTree:
    """Tests for reconstructing the taxonomy from report indentation."""

    def test_scenario(self, scenario_kreport: Path, scenario_tree: TaxonomyTree):
        tree = KrakenReportParser(scenario_kreport).build_tree()

        assert tree.root == 1
        assert tree.children(10) == (11, 12)
        assert tree.get(11).level_id == "S"
        assert tree.get(1).rank is Rank.ROOT
        assert tree.taxa_at_rank("S") == scenario_tree.taxa_at_rank("S")

    def test_unranked_nodes(self, write_kreport: Callable[..., Path]):
        path = write_kreport(rows=[
            ("100.00", 10, 0, "R", 1, "root"),
            ("100.00", 10, 0, "-", 131567, "  cellular organisms"),
            ("100.00", 10, 0, "D", 2, "    Bacteria"),
            ("100.00", 10, 4, "S", 562, "      Escherichia coli"),
            ("60.00", 6, 6, "S1", 83333, "        Escherichia coli K-12"),
        ])
        tree = KrakenReportParser(path).build_tree()

        assert tree.get(131567).level_id == "R1"
        assert tree.get(83333).level_id == "S1"
        assert tree.get(83333).rank is Rank.NO_RANK
        assert tree.ancestors(83333) == [1, 131567, 2, 562, 83333]

    def test_indentation_jump(self, write_kreport: Callable[..., Path]):
        path = write_kreport(rows=[
            ("100.00", 5, 0, "R", 1, "root"),
            ("100.00", 5, 5, "S", 11, "      Genus alpha"),
        ])
        with pytest.raises(MalformedReportError, match="indentation"):
            KrakenReportParser(path).build_tree()

    def test_two_roots(self, write_kreport: Callable[..., Path]):
        path = write_kreport(rows=[
            ("50.00", 5, 5, "R", 1, "root"),
            ("50.00", 5, 5, "R", 2, "other root"),
        ])
        with pytest.raises(MalformedReportError, match="more than one root"):
            KrakenReportParser(path).build_tree()


class TestTrainingReaders:
    """Tests for kraken_cnts and per-read training files."""

    def test_read_kraken_counts(self, scenario_counts: Path):
        tallies = read_kraken_counts(scenario_counts)

        assert set(tallies) == {11, 12}
        assert tallies[11] == {11: 80, 10: 20}
        assert tallies[12] == {12: 60, 10: 40}

    def test_kraken_counts_bad_pair(self, tmp_path: Path):
        path = tmp_path / "bad.kraken_cnts"
        path.write_text("seq1\t11\t\t11:x\n")
        with pytest.raises(DistributionError, match="node:count"):
            read_kraken_counts(path)

    def test_kraken_counts_bad_taxid(self, tmp_path: Path):
        path = tmp_path / "bad.kraken_cnts"
        path.write_text("seq1\tabc\t\t11:1\n")
        with pytest.raises(DistributionError, match="Bad taxid"):
            read_kraken_counts(path)

    def test_read_training_reads(self, tmp_path: Path):
        path = tmp_path / "training.tsv"
        path.write_text(
            "read_id\tsource_taxid\tclassified_taxid\n"
            "r1\t11\t11\n"
            "r2\t11\t10\n"
            "r3\t11\t11\n"
            "r4\t12\t0\n"
        )
        tallies = read_training_reads(path)

        assert tallies[11] == {11: 2, 10: 1}
        assert tallies[12] == {0: 1}

    def test_training_reads_missing_columns(self, tmp_path: Path):
        path = tmp_path / "training.tsv"
        path.write_text("read_id\ttaxid\nr1\t11\n")
        with pytest.raises(DistributionError, match="classified_taxid"):
            read_training_reads(path)
