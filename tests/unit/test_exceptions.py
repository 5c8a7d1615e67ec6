"""Unit tests for custom exceptions module."""

from reabund.core.exceptions import (
    ConfigurationError,
    DistributionError,
    InsufficientTrainingDataError,
    InvalidDistributionEntryError,
    InvalidRankError,
    InvalidThresholdError,
    MalformedReportError,
    NoTaxaAtTargetRankError,
    ReabundError,
    ReportError,
    TaxonomyError,
    UnknownTaxonError,
)


class TestReabundError:
    """Tests for base exception class."""

    def test_basic_message(self):
        """Should create exception with just message."""
        error = ReabundError("Test error")
        assert error.message == "Test error"
        assert error.suggestion is None
        assert str(error) == "Test error"

    def test_message_with_suggestion(self):
        """Should include suggestion in full message."""
        error = ReabundError("Test error", suggestion="Try this fix")
        assert error.suggestion == "Try this fix"
        assert "Suggestion: Try this fix" in str(error)


class TestTaxonomyErrors:
    def test_unknown_taxon(self):
        error = UnknownTaxonError(562)
        assert isinstance(error, TaxonomyError)
        assert error.taxid == 562
        assert "562" in error.message
        assert "same Kraken database" in error.suggestion


class TestDistributionErrors:
    def test_invalid_entry(self):
        error = InvalidDistributionEntryError(11, "masses sum to 0.5")
        assert isinstance(error, DistributionError)
        assert error.taxid == 11
        assert error.reason == "masses sum to 0.5"
        assert "Invalid distribution entry for taxon 11" in str(error)
        assert "reabund build distribution" in error.suggestion

    def test_insufficient_training_data(self):
        error = InsufficientTrainingDataError(12, n_reads=3)
        assert isinstance(error, DistributionError)
        assert error.n_reads == 3
        assert "3 simulated reads" in error.message


class TestReportErrors:
    def test_malformed_report_with_line(self):
        error = MalformedReportError("s.kreport", "bad column", line_num=7)
        assert isinstance(error, ReportError)
        assert "at line 7" in error.message
        assert error.line_num == 7
        assert "kraken2 --report" in error.suggestion

    def test_malformed_report_without_line(self):
        error = MalformedReportError("s.kreport", "empty")
        assert error.message == "Malformed classification report 's.kreport': empty"


class TestConfigurationErrors:
    def test_no_taxa_at_rank(self):
        error = NoTaxaAtTargetRankError("S1")
        assert isinstance(error, ConfigurationError)
        assert "'S1'" in error.message

    def test_invalid_threshold(self):
        error = InvalidThresholdError("threshold", -1, 0, 100)
        assert "threshold = -1" in error.message
        assert "between 0 and 100" in error.suggestion

    def test_invalid_rank(self):
        error = InvalidRankError("strain")
        assert error.level == "strain"
        assert "S1" in error.suggestion
