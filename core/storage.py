# core/storage.py
import datetime
import json
import os
from pathlib import Path
from typing import List, Optional, Sequence

import pytz

from .logger import get_logger
from .models import ItemRecord

logger = get_logger(__name__)

RESULTS_DIR = os.getenv("RESULTS_DIR", "results")
AI_REPORTS_DIR = os.getenv("AI_REPORTS_DIR", "ai-reports")
SNAPSHOT_PREFIX = "detailed-items"
REPORT_PREFIX = "ai-ranking"


def now_utc_iso() -> str:
    return datetime.datetime.now(tz=pytz.UTC).isoformat()


def _timestamp_for_filename() -> str:
    return now_utc_iso().replace(":", "-").replace(".", "-")


def _ensure_dir(path: Path) -> None:
    if not path.exists():
        path.mkdir(parents=True, exist_ok=True)
        logger.info("Created directory %s", path)


def _unique_path(directory: Path, prefix: str, suffix: str) -> Path:
    stamp = _timestamp_for_filename()
    path = directory / f"{prefix}-{stamp}{suffix}"
    n = 1
    while path.exists():
        path = directory / f"{prefix}-{stamp}-{n}{suffix}"
        n += 1
    return path


def _write_atomic(path: Path, text: str) -> None:
    tmp = path.with_name(path.name + ".tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def find_latest_snapshot(results_dir: str | Path | None = None) -> Optional[Path]:
    """
    Return the most recently modified snapshot file, or None.
    """
    directory = Path(results_dir or RESULTS_DIR)
    if not directory.is_dir():
        return None
    candidates = []
    for p in directory.glob("*.json"):
        if SNAPSHOT_PREFIX not in p.name:
            continue
        try:
            if p.is_file():
                candidates.append((p.stat().st_mtime, p))
        except FileNotFoundError:
            # removed after the directory listing
            continue
    if not candidates:
        return None
    return max(candidates, key=lambda c: c[0])[1]


def load_latest(results_dir: str | Path | None = None) -> List[ItemRecord]:
    """
    Load the records of the latest snapshot. Missing or unreadable snapshots
    yield an empty list, so the run behaves like a first run.
    """
    try:
        path = find_latest_snapshot(results_dir)
    except OSError as e:
        logger.error("Failed to look up previous snapshots: %s", e)
        return []
    if path is None:
        logger.info("No previous snapshot found.")
        return []

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except Exception as e:
        logger.error("Failed to load previous snapshot %s: %s", path, e)
        return []

    if not isinstance(data, list):
        logger.error("Snapshot %s is not a list of items; ignoring it.", path)
        return []

    records: List[ItemRecord] = []
    for entry in data:
        if not isinstance(entry, dict):
            logger.warning("Skipping malformed snapshot entry in %s: %r", path, entry)
            continue
        records.append(ItemRecord.from_dict(entry))

    logger.info("Loaded %d items from %s", len(records), path)
    return records


def save_snapshot(
    items: Sequence[ItemRecord], results_dir: str | Path | None = None
) -> Path:
    """
    Write a new timestamped snapshot. Existing snapshots are never touched.
    """
    directory = Path(results_dir or RESULTS_DIR)
    _ensure_dir(directory)
    path = _unique_path(directory, SNAPSHOT_PREFIX, ".json")
    payload = json.dumps([it.to_dict() for it in items], indent=2, ensure_ascii=False)
    _write_atomic(path, payload)
    logger.info("Saved %d items to %s", len(items), path)
    return path


def save_markdown_report(
    text: str,
    reports_dir: str | Path | None = None,
    prefix: str = REPORT_PREFIX,
) -> Path:
    directory = Path(reports_dir or AI_REPORTS_DIR)
    _ensure_dir(directory)
    path = _unique_path(directory, prefix, ".md")
    _write_atomic(path, text)
    logger.info("Saved report to %s", path)
    return path
