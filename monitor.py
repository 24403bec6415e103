import os
import sys
from typing import Callable, Optional

from dotenv import load_dotenv

load_dotenv()

from core.logger import get_logger
from core import storage
from core.diff import finalize, reconcile
from core.ranking import generate_ranking
from core.report import build_plaintext_report, summarize
from fetchers import marketplace

logger = get_logger(__name__)

MAX_NEW_ITEMS = os.getenv("MAX_NEW_ITEMS", "").strip()
AI_RANKING = os.getenv("AI_RANKING", "").strip()
INTERACTIVE = os.getenv("INTERACTIVE", "auto").strip().lower()


class Cancelled(Exception):
    """The user declined to continue the run."""


def parse_new_item_limit(answer: str, available: int) -> int:
    """
    Translate the answer to "how many new items?" into a count.
    'n' cancels; 'all', 'y' or an empty answer means every new item; a
    positive number is capped at `available`. Anything else means all.
    """
    answer = (answer or "").strip().lower()
    if answer == "n":
        raise Cancelled()
    if answer.isdigit() and int(answer) > 0:
        return min(int(answer), available)
    return available


def parse_yes_no(answer: str) -> Optional[bool]:
    answer = (answer or "").strip().lower()
    if answer == "y":
        return True
    if answer == "n":
        return False
    return None


def _is_interactive() -> bool:
    if INTERACTIVE in ("true", "false"):
        return INTERACTIVE == "true"
    return sys.stdin.isatty()


def resolve_new_item_limit(
    available: int, ask: Callable[[str], str] = input
) -> int:
    if MAX_NEW_ITEMS:
        return parse_new_item_limit(MAX_NEW_ITEMS, available)
    if not _is_interactive():
        return available

    if available > 0:
        prompt = (
            f"How many NEW items do you want to scrape? "
            f"(number, 'all' for all {available}, or 'n' to cancel): "
        )
    else:
        prompt = "No new items to scrape. Proceed with updating existing items? (y/n): "
    return parse_new_item_limit(ask(prompt), available)


def wants_ai_ranking(ask: Callable[[str], str] = input) -> bool:
    if AI_RANKING:
        return parse_yes_no(AI_RANKING) is True
    if not _is_interactive():
        return False

    while True:
        choice = parse_yes_no(
            ask("Do you want AI to generate a cost benefit ranking of the items? (y/n): ")
        )
        if choice is not None:
            return choice
        print('Invalid input. Please enter "y" or "n".')


def run_once(ask: Callable[[str], str] = input) -> int:
    session = marketplace.build_session()

    current = marketplace.fetch_saved_listings(session)
    if current is None:
        logger.error("Could not load the saved items page; aborting run.")
        return 1

    logger.info("Checking for price changes...")
    previous = storage.load_latest()
    result = reconcile(current, previous)

    logger.info("\n%s", summarize(result.changes))
    if result.duplicate_current_keys:
        logger.warning(
            "Duplicate listings on the saved page (last one kept): %s",
            list(result.duplicate_current_keys),
        )
    if result.duplicate_previous_keys:
        logger.warning(
            "Duplicate items in the previous snapshot (last one kept): %s",
            list(result.duplicate_previous_keys),
        )

    if not current:
        logger.warning("No items found. Make sure the session can see your saved items.")
        return 0

    pending = result.needs_full_scraping
    logger.info(
        "%d existing items (cached details with price updates), %d new items (need full scraping).",
        len(result.existing_items),
        len(pending),
    )

    try:
        limit = resolve_new_item_limit(len(pending), ask=ask)
    except Cancelled:
        logger.info("Scraping cancelled.")
        return 0

    to_scrape = pending[:limit]
    if to_scrape:
        logger.info("Scraping %d new listings for full details...", len(to_scrape))
        enriched = marketplace.enrich_listings(session, to_scrape)
    else:
        logger.info("No new listings to scrape; all items already have details.")
        enriched = {}

    skipped = len(pending) - len(to_scrape)
    if skipped:
        logger.info("Skipped %d new items (they will be included in the next run).", skipped)

    records = finalize(result, enriched)
    path = storage.save_snapshot(records)
    logger.info("Scraping complete: %d items saved to %s", len(records), path)
    logger.info("\n%s", build_plaintext_report(records, result.changes))

    if not wants_ai_ranking(ask=ask):
        return 0

    logger.info("AI is creating a cost benefit ranking for the items...")
    ranking = generate_ranking(records, on_chunk=lambda c: print(c, end="", flush=True))
    if ranking is None:
        logger.error("AI failed to generate a ranking.")
        return 1

    report_path = storage.save_markdown_report(ranking)
    logger.info("AI report saved to %s", report_path)
    return 0


def main() -> None:
    try:
        raise SystemExit(run_once())
    except (KeyboardInterrupt, EOFError):
        logger.info("Run aborted; previous snapshot left untouched.")
        raise SystemExit(130)
    except SystemExit:
        raise
    except Exception as e:
        logger.exception("Fatal monitor error: %s", e)
        raise SystemExit(2)


if __name__ == "__main__":
    main()
