# core/models.py
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .identity import normalize


class Lifecycle(str, Enum):
    """Change state of a listing between two runs. Values are the title tags."""
    NEW = "new listing"
    UNCHANGED = ""
    PRICE_DROP = "price drop"
    PRICE_INCREASE = "price increase"
    SOLD = "sold"


LIFECYCLE_TAG_RE = re.compile(
    r"^\[(new listing|price drop|price increase|sold)\]\s*", re.IGNORECASE
)


def strip_lifecycle_tag(title: str | None) -> str:
    """Recover the canonical title from a possibly tagged one."""
    return LIFECYCLE_TAG_RE.sub("", title or "", count=1).strip()


def format_title(title: str, lifecycle: Lifecycle) -> str:
    if lifecycle is Lifecycle.UNCHANGED:
        return title
    return f"[{lifecycle.value}] {title}"


@dataclass(frozen=True)
class ListingRef:
    """Lightweight listing collected from the saved items page."""
    key: str
    link: str
    price: str = "No price found"


@dataclass(frozen=True)
class ItemRecord:
    """
    Full-detail listing as persisted in a snapshot file.
    The title may carry a leading lifecycle tag, e.g. "[sold] Mini PC".
    """
    key: str
    title: str
    description: str = ""
    price: str = "Unknown"
    url: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "url": self.url,
            "itemId": self.key,
        }
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ItemRecord":
        url = str(data.get("url") or "")
        error = data.get("error")
        return cls(
            key=str(data.get("itemId") or normalize(url)),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            price=str(data.get("price") or "Unknown"),
            url=url,
            error=str(error) if error is not None else None,
        )


@dataclass(frozen=True)
class MergedItem:
    """
    Reconciled listing. `title` is always the canonical (untagged) title;
    the tagged form is only produced by `display_title`.
    """
    key: str
    url: str
    price: str
    lifecycle: Lifecycle
    title: str = ""
    description: Optional[str] = None

    @property
    def is_new(self) -> bool:
        return self.lifecycle is Lifecycle.NEW

    @property
    def display_title(self) -> str:
        return format_title(self.title, self.lifecycle)

    def to_record(self) -> ItemRecord:
        return ItemRecord(
            key=self.key,
            title=self.display_title,
            description=self.description or "",
            price=self.price,
            url=self.url,
        )

    def with_detail(self, record: ItemRecord) -> "MergedItem":
        return replace(
            self,
            title=strip_lifecycle_tag(record.title),
            description=record.description,
            price=record.price or self.price,
            url=record.url or self.url,
        )


@dataclass(frozen=True)
class ChangeCounters:
    new_listings: int = 0
    sold_listings: int = 0
    price_drops: int = 0
    price_increases: int = 0
    unchanged: int = 0

    @property
    def total(self) -> int:
        return (
            self.new_listings
            + self.sold_listings
            + self.price_drops
            + self.price_increases
            + self.unchanged
        )


@dataclass(frozen=True)
class ReconciliationResult:
    updated_items: Tuple[MergedItem, ...] = ()
    changes: ChangeCounters = field(default_factory=ChangeCounters)
    needs_full_scraping: Tuple[ListingRef, ...] = ()
    duplicate_current_keys: Tuple[str, ...] = ()
    duplicate_previous_keys: Tuple[str, ...] = ()

    @property
    def existing_items(self) -> Tuple[MergedItem, ...]:
        return tuple(it for it in self.updated_items if not it.is_new)
