# fetchers/marketplace.py
import json
import os
import random
import re
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup
from bs4.element import Tag
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential_jitter,
)

from core.identity import normalize
from core.logger import get_logger
from core.models import ItemRecord, ListingRef

logger = get_logger(__name__)

BASE_URL = "https://www.facebook.com"
SAVED_ITEMS_URL = os.getenv("SAVED_ITEMS_URL", f"{BASE_URL}/marketplace/you/saved")
SESSION_COOKIES_PATH = os.getenv("SESSION_COOKIES_PATH", "session-cookies.json")
USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
)
DETAIL_MAX_RETRIES = int(os.getenv("DETAIL_MAX_RETRIES", "3"))
ITEM_DELAY = float(os.getenv("ITEM_DELAY", "3"))

NO_PRICE = "No price found"
NO_DESCRIPTION = "No description found"

PRICE_RE = re.compile(
    r"([A-Z]?\$\d+(?:,\d{3})*(?:\.\d{2})?"
    r"|€\d+(?:,\d{3})*(?:\.\d{2})?"
    r"|£\d+(?:,\d{3})*(?:\.\d{2})?)"
)
PRICE_ONLY_RE = re.compile(r"^" + PRICE_RE.pattern + r"$")

NAV_TITLES = {"Home", "Chats", "Buying", "Selling", "Facebook Menu"}

# Page chrome that leaks into the description when the page did not render fully
NAV_MARKERS = (
    "MarketplaceBrowse allNotificationsInboxMarketplace",
    "Browse allNotificationsInboxMarketplace",
    "MarketplaceBrowse all",
    "NotificationsInboxMarketplace",
)

SIBLING_BLOCKLIST = (
    "Message seller",
    "Save",
    "Share",
    "Today's picks",
    "MarketplaceBrowse",
    "NotificationsInbox",
)
CANDIDATE_BLOCKLIST = (
    "Today's picks",
    "Sponsored",
    "Message seller",
    "Save",
    "Share",
    "Details",
    "Seller information",
)
METADATA_PREFIXES = (
    re.compile(r"^DetailsConditionUsed\s*-\s*", re.IGNORECASE),
    re.compile(r"^DetailsCondition\w*\s*-\s*", re.IGNORECASE),
    re.compile(r"^Details\w*\s*-\s*", re.IGNORECASE),
    re.compile(r"^Condition\w*\s*-\s*", re.IGNORECASE),
)
LOCATION_RE = re.compile(r"^[A-Za-z\s]+,\s*[A-Z]{2,3}$")


class MarketplaceError(Exception):
    """Generic marketplace fetch error."""


def load_session_cookies(session: requests.Session, path: str | Path) -> int:
    """
    Load a browser cookie export (a JSON list of {name, value, domain, path})
    into the session. Returns the number of cookies loaded.
    """
    path = Path(path)
    if not path.exists():
        logger.info("No session cookies at %s; continuing without a session.", path)
        return 0

    try:
        with open(path, "r", encoding="utf-8") as f:
            cookies = json.load(f)
    except Exception as e:
        logger.warning("Failed to read session cookies from %s: %s", path, e)
        return 0

    if not isinstance(cookies, list):
        logger.warning("Session cookie file %s is not a list; ignoring it.", path)
        return 0

    loaded = 0
    for c in cookies:
        if not isinstance(c, dict) or "name" not in c or "value" not in c:
            continue
        session.cookies.set(
            c["name"],
            c["value"],
            domain=c.get("domain", ""),
            path=c.get("path", "/"),
        )
        loaded += 1
    logger.info("Session loaded: %d cookies from %s", loaded, path)
    return loaded


def build_session(cookies_path: str | Path | None = None) -> requests.Session:
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": USER_AGENT,
            "Accept-Language": "en-US,en;q=0.9",
        }
    )
    load_session_cookies(session, cookies_path or SESSION_COOKIES_PATH)
    return session


@retry(wait=wait_exponential_jitter(initial=1, max=30), stop=stop_after_attempt(5))
def _fetch(session: requests.Session, url: str) -> str:
    r = session.get(url, timeout=30)
    r.raise_for_status()
    return r.text


def _text(tag: Tag | None) -> str:
    # textContent-like: child nodes keep a single space between them
    if tag is None:
        return ""
    return " ".join(tag.get_text(" ", strip=True).split())


def _find_price_near(anchor: Tag) -> str:
    container = anchor.find_parent("div") or anchor
    for el in container.find_all(True):
        text = _text(el)
        if text and len(text) < 20:
            m = PRICE_RE.search(text)
            if m:
                return m.group(1)
    return NO_PRICE


def collect_listings(html: str, base_url: str = BASE_URL) -> List[ListingRef]:
    """
    Collect item links and their displayed prices from the saved items page.
    Listings are deduplicated by item key, first occurrence wins.
    """
    soup = BeautifulSoup(html, "html.parser")
    listings: List[ListingRef] = []
    seen: set[str] = set()

    for a in soup.select('a[href*="marketplace/item"]'):
        href = a.get("href")
        if not isinstance(href, str) or not href:
            continue
        link = urljoin(base_url, href)
        key = normalize(link)
        if key in seen:
            continue
        seen.add(key)
        listings.append(ListingRef(key=key, link=link, price=_find_price_near(a)))

    logger.debug("Collected %d listings from saved items page.", len(listings))
    return listings


def fetch_saved_listings(
    session: requests.Session, url: str = SAVED_ITEMS_URL
) -> Optional[List[ListingRef]]:
    """
    Fetch the saved items page and return its listings, or None on failure.
    """
    logger.info("Collecting saved listings from %s", url)
    try:
        html = _fetch(session, url)
    except RetryError as e:
        logger.error("Saved items fetch failed for %s after retries: %s", url, e)
        return None
    except Exception as e:
        logger.error("Saved items fetch threw unexpected exception for %s: %s", url, e)
        return None

    listings = collect_listings(html, base_url=url)
    logger.info("Found %d saved listings.", len(listings))
    return listings


def extract_title(soup: BeautifulSoup) -> str:
    for h1 in soup.find_all("h1"):
        text = _text(h1)
        if text and text not in NAV_TITLES:
            return text
    title = soup.title.string if soup.title is not None and soup.title.string else ""
    return title.replace("Marketplace - ", "").replace(" | Facebook", "").strip()


def _find_title_h1(soup: BeautifulSoup, title: str) -> Tag | None:
    for h1 in soup.find_all("h1"):
        if _text(h1) == title:
            return h1
    return None


def extract_price(soup: BeautifulSoup, title: str) -> str:
    title_h1 = _find_title_h1(soup, title)
    if title_h1 is not None:
        for sibling in title_h1.find_next_siblings(True, limit=3):
            if sibling.name != "div":
                continue
            m = PRICE_RE.search(_text(sibling))
            if m:
                return m.group(1)

    root = soup.body or soup
    for el in root.find_all(True):
        text = _text(el)
        if text and len(text) < 20:
            m = PRICE_ONLY_RE.match(text)
            if m:
                return m.group(1)
    return NO_PRICE


def _expander_button(soup: BeautifulSoup) -> Tag | None:
    buttons = soup.select('div[role="button"]')
    for label in ("see less", "see more"):
        for button in buttons:
            if label in _text(button.find("span")).lower():
                return button
    return None


def _clean_metadata(text: str) -> str:
    for pattern in METADATA_PREFIXES:
        text = pattern.sub("", text)
    return text.strip()


def _candidate_texts(root: Tag, title: str) -> Iterable[str]:
    for el in root.find_all(True):
        text = el.get_text().strip()
        if not (30 < len(text) < 1500):
            continue
        if text == title or any(b in text for b in CANDIDATE_BLOCKLIST):
            continue
        if re.match(r"^\$\d+", text) or LOCATION_RE.match(text):
            continue
        if len(el.find_all(True, recursive=False)) < 3:
            yield text


def extract_description(soup: BeautifulSoup, title: str) -> str:
    """
    Heuristic description lookup: the expandable "See more" block first,
    then the block following the title, then the longest plausible text.
    """
    button = _expander_button(soup)
    if button is not None and button.parent is not None and button.parent.name == "span":
        span_text = button.parent.get_text().strip()
        if len(span_text) > 30:
            cleaned = re.sub(r"see (more|less)", "", span_text, flags=re.IGNORECASE).strip()
            if len(cleaned) > 20:
                return cleaned

    title_h1 = _find_title_h1(soup, title)
    if title_h1 is not None:
        parent = title_h1.parent
        if parent is not None and parent.name == "div" and parent.parent is not None:
            siblings = [
                c
                for c in parent.parent.find_all(True, recursive=False)
                if c.name == "div" and c is not parent
            ]
            if siblings:
                text = siblings[-1].get_text().strip()
                if (
                    20 < len(text) < 2000
                    and text != title
                    and not any(b in text for b in SIBLING_BLOCKLIST)
                ):
                    cleaned = _clean_metadata(text)
                    if len(cleaned) > 10:
                        return cleaned

    candidates = sorted(_candidate_texts(soup.body or soup, title), key=len, reverse=True)
    if candidates:
        return candidates[0]
    return NO_DESCRIPTION


def parse_item_page(html: str, url: str) -> ItemRecord:
    soup = BeautifulSoup(html, "html.parser")
    title = extract_title(soup)
    key = normalize(url)
    return ItemRecord(
        key=key,
        title=title,
        description=extract_description(soup, title),
        price=extract_price(soup, title),
        url=url,
    )


def has_navigation_description(record: ItemRecord) -> bool:
    return any(marker in record.description for marker in NAV_MARKERS)


def _fetch_page(session: requests.Session, url: str) -> str:
    r = session.get(url, timeout=30)
    if r.status_code != 200:
        raise MarketplaceError(f"Bad status code {r.status_code}")
    return r.text


def _last_outcome(retry_state):
    # out of attempts: keep the last parsed page, re-raise the last error
    return retry_state.outcome.result()


@retry(
    wait=wait_exponential_jitter(initial=2, max=30),
    stop=stop_after_attempt(DETAIL_MAX_RETRIES),
    retry=retry_if_exception_type() | retry_if_result(has_navigation_description),
    retry_error_callback=_last_outcome,
)
def _fetch_item_page(session: requests.Session, url: str) -> ItemRecord:
    html = _fetch_page(session, url)
    return parse_item_page(html, url)


def error_record(url: str, message: str) -> ItemRecord:
    return ItemRecord(
        key=normalize(url),
        title="Error loading",
        description="Could not load item details",
        price="Unknown",
        url=url,
        error=message,
    )


def fetch_item_details(session: requests.Session, url: str) -> ItemRecord:
    """
    Scrape one listing page. Never raises: pages that keep failing produce
    an "Error loading" record carrying the error message.
    """
    try:
        record = _fetch_item_page(session, url)
    except Exception as e:
        logger.error("Failed to scrape %s after %d attempts: %s", url, DETAIL_MAX_RETRIES, e)
        return error_record(url, str(e))

    if has_navigation_description(record):
        logger.warning("Description for %s still contains page navigation text.", url)
    logger.info("Extracted: %s", record.title[:50])
    return record


def enrich_listings(
    session: requests.Session,
    listings: Sequence[ListingRef],
    delay: float = ITEM_DELAY,
) -> Dict[str, ItemRecord]:
    """
    Scrape full details for each listing, one at a time with a pause
    between requests. Returns item key -> record.
    """
    out: Dict[str, ItemRecord] = {}
    total = len(listings)
    for i, listing in enumerate(listings):
        logger.info("[%d/%d] Visiting: %s", i + 1, total, listing.link)
        out[listing.key] = fetch_item_details(session, listing.link)

        if i < total - 1 and delay > 0:
            sleep_for = random.uniform(delay * 0.8, delay * 1.2)
            logger.debug("Sleeping %.1fs before next item.", sleep_for)
            time.sleep(sleep_for)
    return out
