# core/diff.py
import re
from collections import Counter
from dataclasses import replace
from typing import Dict, List, Mapping, Sequence, Tuple

from .identity import normalize
from .models import (
    ChangeCounters,
    ItemRecord,
    Lifecycle,
    ListingRef,
    MergedItem,
    ReconciliationResult,
    strip_lifecycle_tag,
)

PRICE_VALUE_RE = re.compile(r"(\d+(?:,\d{3})*(?:\.\d{2})?)")
PRICE_SENTINELS = {"no price found", "unknown"}
ERROR_TITLE = "Error loading"


def parse_price_value(price: str | None) -> float:
    """
    Numeric value of a price string like "$1,250" or "A$50".
    Missing, sentinel or digit-less prices are 0, which callers treat as
    "not comparable".
    """
    if not price or price.strip().lower() in PRICE_SENTINELS:
        return 0.0
    m = PRICE_VALUE_RE.search(price)
    if not m:
        return 0.0
    try:
        return float(m.group(1).replace(",", ""))
    except ValueError:
        return 0.0


def _classify(current_price: str, previous_price: str) -> Lifecycle:
    after = parse_price_value(current_price)
    before = parse_price_value(previous_price)
    if after > 0 and before > 0 and after != before:
        return Lifecycle.PRICE_DROP if after < before else Lifecycle.PRICE_INCREASE
    return Lifecycle.UNCHANGED


def _index_by_key(pairs) -> Tuple[Dict, Tuple[str, ...]]:
    out: Dict = {}
    dupes: List[str] = []
    for key, value in pairs:
        if key in out and key not in dupes:
            dupes.append(key)
        # last one wins
        out[key] = value
    return out, tuple(dupes)


def reconcile(
    current: Sequence[ListingRef], previous: Sequence[ItemRecord]
) -> ReconciliationResult:
    """
    Match the listings found on this run against the previous snapshot.

    - current: lightweight listings (link + price) from the saved items page
    - previous: full-detail records of the latest snapshot
    Returns the merged items (matched, then new, then sold), the change
    counters and the new listings that still need a detail scrape.
    Never raises; malformed prices simply count as unchanged.
    """
    current_by_key, dup_current = _index_by_key(
        (normalize(listing.link), listing) for listing in current
    )
    previous_by_key, dup_previous = _index_by_key(
        (normalize(record.url), record) for record in previous
    )

    counts: Counter = Counter()
    matched: List[MergedItem] = []
    added: List[MergedItem] = []
    needs_full_scraping: List[ListingRef] = []

    for key, listing in current_by_key.items():
        record = previous_by_key.get(key)
        if record is None:
            added.append(
                MergedItem(
                    key=key,
                    url=listing.link,
                    price=listing.price,
                    lifecycle=Lifecycle.NEW,
                )
            )
            needs_full_scraping.append(replace(listing, key=key))
            counts[Lifecycle.NEW] += 1
            continue

        lifecycle = _classify(listing.price, record.price)
        counts[lifecycle] += 1
        matched.append(
            MergedItem(
                key=key,
                url=listing.link,
                price=listing.price,
                lifecycle=lifecycle,
                title=strip_lifecycle_tag(record.title),
                description=record.description,
            )
        )

    sold: List[MergedItem] = []
    for key, record in previous_by_key.items():
        if key in current_by_key:
            continue
        sold.append(
            MergedItem(
                key=key,
                url=record.url,
                price=record.price,
                lifecycle=Lifecycle.SOLD,
                title=strip_lifecycle_tag(record.title),
                description=record.description,
            )
        )
        counts[Lifecycle.SOLD] += 1

    changes = ChangeCounters(
        new_listings=counts[Lifecycle.NEW],
        sold_listings=counts[Lifecycle.SOLD],
        price_drops=counts[Lifecycle.PRICE_DROP],
        price_increases=counts[Lifecycle.PRICE_INCREASE],
        unchanged=counts[Lifecycle.UNCHANGED],
    )

    return ReconciliationResult(
        updated_items=tuple(matched + added + sold),
        changes=changes,
        needs_full_scraping=tuple(needs_full_scraping),
        duplicate_current_keys=dup_current,
        duplicate_previous_keys=dup_previous,
    )


def finalize(
    result: ReconciliationResult, enriched: Mapping[str, ItemRecord]
) -> List[ItemRecord]:
    """
    Build the records of the next snapshot: cached items first, then the
    new listings that were scraped in detail, tagged as new listings.
    New listings missing from `enriched` are left for the next run.
    """
    records = [it.to_record() for it in result.existing_items]

    for listing in result.needs_full_scraping:
        detail = enriched.get(listing.key)
        if detail is None:
            continue
        if detail.error is not None or detail.title == ERROR_TITLE:
            records.append(
                replace(detail, key=listing.key, url=detail.url or listing.link)
            )
            continue
        merged = MergedItem(
            key=listing.key,
            url=listing.link,
            price=listing.price,
            lifecycle=Lifecycle.NEW,
        ).with_detail(detail)
        records.append(merged.to_record())

    return records
