# core/report.py
import json
from pathlib import Path
from typing import List, Sequence

from jinja2 import Environment, FileSystemLoader

from .models import ChangeCounters, ItemRecord, LIFECYCLE_TAG_RE

# Resolve template directory relative to this file
TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    keep_trailing_newline=True,
    trim_blocks=True,
    lstrip_blocks=True,
)

DESCRIPTION_PREVIEW_CHARS = 100


def summarize(changes: ChangeCounters) -> str:
    lines = [
        "Price Tracking Summary:",
        f"  New listings: {changes.new_listings}",
        f"  Price drops: {changes.price_drops}",
        f"  Price increases: {changes.price_increases}",
        f"  Sold listings: {changes.sold_listings}",
        f"  Unchanged: {changes.unchanged}",
        f"  Total listings: {changes.total}",
    ]
    return "\n".join(lines)


def _preview(text: str) -> str:
    text = " ".join((text or "").split())
    if len(text) <= DESCRIPTION_PREVIEW_CHARS:
        return text
    return text[:DESCRIPTION_PREVIEW_CHARS] + "..."


def build_plaintext_report(
    records: Sequence[ItemRecord], changes: ChangeCounters
) -> str:
    template = env.get_template("report.txt")

    items = [
        {
            "title": r.title,
            "price": r.price,
            "url": r.url,
            "description_preview": _preview(r.description),
        }
        for r in records
    ]

    return template.render(summary=summarize(changes), items=items)


def build_ai_input(records: Sequence[ItemRecord]) -> str:
    """Snapshot records as the JSON payload handed to the ranking model."""
    payload: List[dict] = []
    for r in records:
        data = r.to_dict()
        data.pop("error", None)
        payload.append(data)
    return json.dumps(payload, ensure_ascii=False)


def build_ranking_prompt(records: Sequence[ItemRecord]) -> str:
    has_sold = False
    for r in records:
        m = LIFECYCLE_TAG_RE.match(r.title)
        if m and m.group(1).lower() == "sold":
            has_sold = True
            break
    return env.get_template("ranking_prompt.txt").render(has_sold=has_sold)
