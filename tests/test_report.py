"""Tests for run summaries and AI input."""

import json

from core.models import ChangeCounters, ItemRecord
from core.report import (
    build_ai_input,
    build_plaintext_report,
    build_ranking_prompt,
    summarize,
)


class TestSummarize:
    def test_fixed_order_and_total(self):
        text = summarize(
            ChangeCounters(
                new_listings=1,
                sold_listings=2,
                price_drops=3,
                price_increases=4,
                unchanged=5,
            )
        )
        lines = text.splitlines()
        assert lines[1].endswith("New listings: 1")
        assert lines[2].endswith("Price drops: 3")
        assert lines[3].endswith("Price increases: 4")
        assert lines[4].endswith("Sold listings: 2")
        assert lines[5].endswith("Unchanged: 5")
        assert lines[6].endswith("Total listings: 15")


class TestPlaintextReport:
    def test_lists_items(self):
        records = [
            ItemRecord(key="1", title="[price drop] Mini PC", price="$90", url="u1",
                       description="x" * 150),
            ItemRecord(key="2", title="Server", price="$200", url="u2", description="rack"),
        ]
        text = build_plaintext_report(records, ChangeCounters(price_drops=1, unchanged=1))
        assert "Total listings: 2" in text
        assert "1. [price drop] Mini PC" in text
        assert "2. Server" in text
        assert "x" * 100 + "..." in text
        assert "x" * 101 not in text


class TestAiInput:
    def test_serializes_snapshot_fields_without_errors(self):
        records = [ItemRecord(key="1", title="Error loading", url="u", error="boom")]
        data = json.loads(build_ai_input(records))
        assert data == [
            {"title": "Error loading", "description": "", "price": "Unknown",
             "url": "u", "itemId": "1"}
        ]

    def test_prompt_mentions_sold_reference(self):
        with_sold = build_ranking_prompt([ItemRecord(key="1", title="[sold] PC")])
        without = build_ranking_prompt([ItemRecord(key="1", title="PC")])
        assert "[sold]" in with_sold
        assert "there are none in this batch" in without
        assert "there are none in this batch" not in with_sold
