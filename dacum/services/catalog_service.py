"""
Reference catalog builder.

Pulls paged CU records from a ``CatalogSource``, normalises and deduplicates
them by ``cu_code`` and appends them to the catalog store. Builds are
incremental and resumable: progress (last successful page, failed pages) is
persisted after every page, and a page that fails to fetch is reported
without aborting the rest of the range.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from dacum.core.exceptions import ValidationError
from dacum.services.cp_document import utcnow_iso

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 50
MAX_SEARCH_LIMIT = 200


# ═════════════════════════════════════════════════════════════════════════════
# Sources
# ═════════════════════════════════════════════════════════════════════════════

class CatalogSource(ABC):
    """Paged supplier of raw catalog records (1-based pages)."""

    @abstractmethod
    def fetch_page(self, page: int) -> list[dict]:
        """Raw records on *page*; raises on fetch failure, empty list past the end."""


class StaticCatalogSource(CatalogSource):
    """In-memory pages, as ``{page: [records]}`` or a list where index 0 is page 1."""

    def __init__(self, pages):
        if isinstance(pages, dict):
            self._pages = {int(k): list(v or []) for k, v in pages.items()}
        else:
            self._pages = {i: list(v or []) for i, v in enumerate(pages or [], 1)}

    def fetch_page(self, page: int) -> list[dict]:
        return list(self._pages.get(page, []))


class JsonFileCatalogSource(CatalogSource):
    """
    Pages read from a JSON file::

        {"pages": {"1": [{"cuCode": "...", "cuTitle": "..."}], "2": [...]}}

    or a bare list of pages. The file is read on every fetch so an operator
    can extend it between increments.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def fetch_page(self, page: int) -> list[dict]:
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        pages = data.get("pages", {}) if isinstance(data, dict) else data
        return StaticCatalogSource(pages).fetch_page(page)


# ═════════════════════════════════════════════════════════════════════════════
# Normalisation
# ═════════════════════════════════════════════════════════════════════════════

_FIELD_KEYS = {
    "cu_code": ("cuCode", "cu_code", "code"),
    "cu_title": ("cuTitle", "cu_title", "title"),
    "cu_description": ("cuDesc", "cu_description", "description"),
    "source_ref": ("jdUrl", "source_ref", "url"),
}


def normalize_record(raw) -> dict | None:
    """Canonical record, or None when code or title is missing."""
    if not isinstance(raw, dict):
        return None
    record = {}
    for field, keys in _FIELD_KEYS.items():
        value = ""
        for key in keys:
            if raw.get(key):
                value = " ".join(str(raw[key]).split())
                break
        record[field] = value
    if not record["cu_code"] or not record["cu_title"]:
        return None
    record["indexed_at"] = utcnow_iso()
    return record


# ═════════════════════════════════════════════════════════════════════════════
# Builder
# ═════════════════════════════════════════════════════════════════════════════

class CatalogBuilder:
    """
    Args:
        store: CatalogStore.
        source: CatalogSource, or None when no source is configured (build
                and resume then raise ValidationError; status/search work).
    """

    def __init__(self, store, source: CatalogSource | None = None):
        self.store = store
        self.source = source

    def build_increment(self, from_page: int, to_page: int | None = None) -> dict:
        if self.source is None:
            raise ValidationError("No catalog source configured", component="catalog")
        try:
            from_page = int(from_page)
            to_page = int(to_page if to_page is not None else from_page)
        except (TypeError, ValueError) as exc:
            raise ValidationError("from_page and to_page must be integers", component="catalog") from exc
        if from_page < 1 or to_page < from_page:
            raise ValidationError(
                "Page range must satisfy 1 <= from_page <= to_page",
                details={"from_page": from_page, "to_page": to_page},
                component="catalog",
            )

        progress = self.store.get_progress()
        failed = [f for f in progress.get("failed_pages") or [] if not from_page <= f["page"] <= to_page]
        added = skipped = processed = 0
        failed_now = []

        for page in range(from_page, to_page + 1):
            try:
                raw_records = self.source.fetch_page(page)
            except Exception as exc:
                # one bad page never aborts the increment
                logger.warning("Catalog page %d failed: %s", page, exc)
                failed_now.append({"page": page, "error": str(exc)})
            else:
                processed += 1
                for raw in raw_records or []:
                    record = normalize_record(raw)
                    if record is None or not self.store.add(record):
                        skipped += 1
                        continue
                    added += 1
                progress["last_page"] = max(int(progress.get("last_page") or 0), page)

            progress["failed_pages"] = failed + failed_now
            progress["total_count"] = self.store.count()
            progress["updated_at"] = utcnow_iso()
            self.store.save_progress(progress)

        logger.info("Catalog increment %d-%d: added=%d skipped=%d failed=%d",
                    from_page, to_page, added, skipped, len(failed_now))
        return {
            "from_page": from_page,
            "to_page": to_page,
            "added": added,
            "skipped": skipped,
            "pages_processed": processed,
            "failed_pages": failed_now,
            "progress": self.store.get_progress(),
        }

    def resume(self, pages: int = 1) -> dict:
        """Build the next *pages* pages after the last successful one."""
        try:
            pages = int(pages)
        except (TypeError, ValueError) as exc:
            raise ValidationError("pages must be an integer", component="catalog") from exc
        if pages < 1:
            raise ValidationError("pages must be at least 1", component="catalog")
        start = int(self.store.get_progress().get("last_page") or 0) + 1
        return self.build_increment(start, start + pages - 1)

    def status(self) -> dict:
        progress = self.store.get_progress()
        progress["record_count"] = self.store.count()
        progress["source_configured"] = self.source is not None
        return progress

    def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> dict:
        """Substring keyword search: title +3, description +2, code +1, any field +1."""
        q = " ".join(str(query or "").split()).lower()
        try:
            limit = max(1, min(MAX_SEARCH_LIMIT, int(limit)))
        except (TypeError, ValueError):
            limit = DEFAULT_SEARCH_LIMIT

        records = self.store.list_records()
        if not q:
            return {"query": q, "total_indexed": len(records), "hits": []}

        scored = []
        for rec in records:
            title = rec.get("cu_title", "").lower()
            desc = rec.get("cu_description", "").lower()
            code = rec.get("cu_code", "").lower()
            score = (
                (3 if q in title else 0)
                + (2 if q in desc else 0)
                + (1 if q in code else 0)
                + (1 if q in f"{code} {title} {desc}" else 0)
            )
            if score:
                scored.append((score, rec))
        scored.sort(key=lambda pair: -pair[0])
        return {
            "query": q,
            "total_indexed": len(records),
            "hits": [dict(rec, score=score) for score, rec in scored[:limit]],
        }
