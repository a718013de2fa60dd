"""Tests for text normalisation ahead of keyword matching."""

import pytest

from case_engine.utils.text_cleaning import (
    normalize_for_matching,
    normalize_unicode,
    normalize_whitespace,
    strip_html,
)


class TestStripHtml:
    def test_removes_tags_and_unescapes(self):
        assert strip_html("<p>Tom &amp; Jerry</p>").strip() == "Tom & Jerry"

    def test_line_breaks_become_spaces(self):
        assert "eviction notice" in normalize_whitespace(strip_html("eviction<br/>notice"))


class TestNormalizeUnicode:
    def test_zero_width_characters_removed(self):
        assert normalize_unicode("evic​tion") == "eviction"

    def test_smart_quotes_straightened(self):
        assert normalize_unicode("“landlord’s”") == "\"landlord's\""

    def test_nfkc_folds_compatibility_forms(self):
        assert normalize_unicode("ｅviction") == "eviction"


class TestNormalizeForMatching:
    def test_canonical_form(self):
        assert normalize_for_matching("  URGENT\n\tEviction   Notice ") == "urgent eviction notice"

    @pytest.mark.parametrize("value", [None, "", 42, ["eviction"]])
    def test_garbage_collapses_to_empty(self, value):
        assert normalize_for_matching(value) == ""
