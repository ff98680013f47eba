"""
Tests for artifact naming and language detection.

Run with: pytest tests/test_naming.py -v
"""
from datetime import date, datetime

from core.naming import (
    artifact_filename,
    contains_arabic,
    detect_language,
    normalize_language,
    sanitize_label,
)


class TestSanitizeLabel:
    def test_strips_punctuation_and_joins_words(self):
        """Punctuation is dropped and words are joined with underscores."""
        assert sanitize_label("Acme Steel & Co.") == "Acme_Steel_Co"

    def test_collapses_whitespace(self):
        """Runs of whitespace become one separator."""
        assert sanitize_label("  Gulf   Trading\tLLC ") == "Gulf_Trading_LLC"

    def test_keeps_arabic(self):
        """Arabic letters survive sanitizing."""
        assert sanitize_label("شركة النور!") == "شركة_النور"

    def test_truncates_to_thirty(self):
        """Labels are capped at 30 characters."""
        assert len(sanitize_label("x" * 80)) == 30

    def test_nothing_usable(self):
        """A label with nothing usable sanitizes to empty."""
        assert sanitize_label("!!!") == ""
        assert sanitize_label(None) == ""


class TestArtifactFilename:
    def test_underscore_style(self):
        """Default style: number, label and date joined by underscores."""
        name = artifact_filename("PO0007", "Acme Steel", "2026-10-19")
        assert name == "PO0007_Acme_Steel_2026-10-19.pdf"

    def test_dash_style(self):
        """Dash style joins the same parts with dashes."""
        name = artifact_filename("PQ0003", "Acme Steel", date(2026, 10, 19), style="dash")
        assert name == "PQ0003-2026-10-19-Acme_Steel.pdf"

    def test_datetime_and_iso_timestamp(self):
        """Dates accept datetime objects and ISO timestamps."""
        assert artifact_filename("RN0001", "x", datetime(2026, 1, 2, 13, 0)).endswith("_2026-01-02.pdf")
        assert artifact_filename("RN0001", "x", "2026-01-02T13:00:00+00:00").endswith("_2026-01-02.pdf")

    def test_empty_label_falls_back(self):
        """An empty label falls back to "document"."""
        assert artifact_filename("IMR0001", "", "2026-10-19") == "IMR0001_document_2026-10-19.pdf"

    def test_no_path_separators(self):
        """Filenames never contain path separators."""
        name = artifact_filename("RFQ0001", "../../etc/passwd", "2026-10-19")
        assert "/" not in name and ".." not in name

    def test_suffix_before_extension(self):
        """A suffix goes after the date and before the extension."""
        name = artifact_filename("PO0007", "Acme Steel", "2026-10-19", suffix="r083015")
        assert name == "PO0007_Acme_Steel_2026-10-19_r083015.pdf"


class TestLanguage:
    def test_contains_arabic(self):
        """Any Arabic letter counts as Arabic text."""
        assert contains_arabic("مرحبا")
        assert not contains_arabic("hello")
        assert not contains_arabic(None)

    def test_majority_arabic(self):
        """More Arabic than Latin values selects Arabic."""
        assert detect_language(["شركة النور", "الرياض", "Bolt M8"]) == "ar"

    def test_half_is_not_majority(self):
        """An even split stays English."""
        assert detect_language(["شركة النور", "Acme"]) == "en"

    def test_empty_values_ignored(self):
        """Empty values are not counted."""
        assert detect_language([None, "", "  ", "الرياض"]) == "ar"
        assert detect_language([]) == "en"

    def test_normalize(self):
        """Language names and codes normalize to en or ar, anything else to None."""
        assert normalize_language("Arabic") == "ar"
        assert normalize_language(" EN ") == "en"
        assert normalize_language("fr") is None
        assert normalize_language(None) is None
