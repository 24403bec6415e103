"""Tests for item key normalization."""

from core.identity import normalize


class TestNormalize:
    def test_extracts_item_id(self):
        assert normalize("https://www.facebook.com/marketplace/item/123456/") == "123456"

    def test_ignores_query_string(self):
        url = "https://www.facebook.com/marketplace/item/42/?ref=saved&tracking=abc"
        assert normalize(url) == "42"

    def test_relative_link(self):
        assert normalize("/marketplace/item/987") == "987"

    def test_falls_back_to_raw_url(self):
        url = "https://example.com/listing/abc"
        assert normalize(url) == url

    def test_empty(self):
        assert normalize("") == ""
        assert normalize(None) == ""
