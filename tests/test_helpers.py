"""Tests for filename sanitizing and storage path helpers."""
from app.utils.helpers import build_storage_path, count_words, sanitize_filename, truncate_text


def test_sanitize_filename():
    assert sanitize_filename("Quarterly Report (final).pdf") == "Quarterly_Report_final_.pdf"
    assert sanitize_filename("__weird__name__.pdf") == "weird_name_.pdf"
    assert sanitize_filename("résumé.pdf") == "r_sum_.pdf"
    assert sanitize_filename("") == "document.pdf"
    assert sanitize_filename("???") == "document.pdf"


def test_build_storage_path():
    assert build_storage_path("user-1", "My File.pdf", now_ms=1700000000000) == (
        "user-1/1700000000000-My_File.pdf"
    )


def test_count_words_and_truncate():
    assert count_words("  one two\nthree ") == 3
    assert truncate_text("short", 10) == "short"
    assert truncate_text("abcdefghij", 8) == "abcde..."
