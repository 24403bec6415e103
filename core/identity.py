# core/identity.py
import re

ITEM_ID_RE = re.compile(r"/marketplace/item/(\d+)")


def normalize(url: str | None) -> str:
    """
    Derive the item key from a listing URL: the numeric marketplace item id,
    or the URL itself when it does not look like an item link.
    """
    if not url:
        return ""
    m = ITEM_ID_RE.search(url)
    return m.group(1) if m else url
