"""Tests for lifecycle tags and record serialization."""

import pytest

from core.models import (
    ItemRecord,
    Lifecycle,
    MergedItem,
    format_title,
    strip_lifecycle_tag,
)


class TestLifecycleTags:
    @pytest.mark.parametrize(
        "lifecycle",
        [Lifecycle.NEW, Lifecycle.PRICE_DROP, Lifecycle.PRICE_INCREASE, Lifecycle.SOLD],
    )
    def test_strip_recovers_canonical_title(self, lifecycle):
        tagged = format_title("Mini PC i5 16GB", lifecycle)
        assert tagged == f"[{lifecycle.value}] Mini PC i5 16GB"
        assert strip_lifecycle_tag(tagged) == "Mini PC i5 16GB"

    def test_unchanged_has_no_tag(self):
        assert format_title("Server", Lifecycle.UNCHANGED) == "Server"

    def test_strip_is_case_insensitive(self):
        assert strip_lifecycle_tag("[Price Drop]  Laptop") == "Laptop"

    def test_strip_only_removes_leading_tag(self):
        assert strip_lifecycle_tag("Laptop [sold]") == "Laptop [sold]"
        assert strip_lifecycle_tag("[refurbished] Laptop") == "[refurbished] Laptop"

    def test_strip_empty(self):
        assert strip_lifecycle_tag(None) == ""


class TestItemRecord:
    def test_to_dict_uses_snapshot_field_names(self):
        rec = ItemRecord(key="1", title="Mini PC", description="d", price="$100", url="u")
        assert rec.to_dict() == {
            "title": "Mini PC",
            "description": "d",
            "price": "$100",
            "url": "u",
            "itemId": "1",
        }

    def test_error_is_kept(self):
        rec = ItemRecord(key="1", title="Error loading", error="timeout")
        assert rec.to_dict()["error"] == "timeout"
        assert ItemRecord.from_dict(rec.to_dict()).error == "timeout"

    def test_from_dict_derives_key_from_url(self):
        rec = ItemRecord.from_dict(
            {"title": "X", "url": "https://www.facebook.com/marketplace/item/77/"}
        )
        assert rec.key == "77"
        assert rec.price == "Unknown"
        assert rec.description == ""


class TestMergedItem:
    def test_to_record_tags_title(self):
        item = MergedItem(
            key="5", url="u", price="$10", lifecycle=Lifecycle.SOLD, title="Dock"
        )
        assert item.to_record().title == "[sold] Dock"
        assert item.title == "Dock"

    def test_is_new(self):
        item = MergedItem(key="5", url="u", price="$10", lifecycle=Lifecycle.NEW)
        assert item.is_new
        assert item.description is None
