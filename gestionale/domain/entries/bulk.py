"""
Bulk metadata updates on ledger entries.

Two modes share the same unit operation (one single-entry meta patch):

* selected: patch an explicit list of ids, progress ``done / total``;
* all matching: page through the filtered entries collecting every id first
  (0-25% of the progress bar), then patch them one by one (25-100%).

Units run one after another. Cancellation is honoured between pages and
between units, never in the middle of one; work already committed stays.
The first failing unit ends the run with ``status="error"``.
"""
from dataclasses import dataclass
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from gestionale.db.models import StoreUnavailableError
from gestionale.domain.entries.store import EntryFilters
from gestionale.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"
STATUS_CANCELLED = "cancelled"

COLLECT_WEIGHT = 25.0
DEFAULT_BULK_PAGE_SIZE = 500

CANCELLED_MESSAGE = "Operation cancelled by the user"

# Called with (progress_percent, done, total)
ProgressCallback = Callable[[float, int, int], None]


class EmptyPatchError(ValueError):
    """Raised when a metadata patch would not change any field."""


@dataclass
class EntryMetaPatch:
    """
    Metadata to assign. ``None`` leaves a field alone; an empty string clears it.
    """
    account_code: Optional[str] = None
    nature: Optional[str] = None

    def __post_init__(self):
        if self.account_code is None and self.nature is None:
            raise EmptyPatchError("At least one of account_code or nature must be set")

    def to_updates(self) -> Dict[str, Any]:
        updates: Dict[str, Any] = {}
        if self.account_code is not None:
            updates["account_code"] = self.account_code.strip() or None
        if self.nature is not None:
            updates["nature"] = self.nature.strip() or None
        return updates

    def describe(self, count: int) -> str:
        updates = self.to_updates()
        parts = []
        if "account_code" in updates:
            parts.append(f'account "{updates["account_code"] or ""}"')
        if "nature" in updates:
            parts.append(f'nature "{updates["nature"] or ""}"')
        return f"Assigned {' and '.join(parts)} to {count} entries"


@dataclass
class BulkMutationResult:
    status: str
    done: int
    total: int
    progress: float
    message: Optional[str] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "done": self.done,
            "total": self.total,
            "progress": self.progress,
            "message": self.message,
            "error": self.error,
        }


def _is_cancelled(cancel_token: Optional[CancellationToken]) -> bool:
    return cancel_token is not None and cancel_token.is_cancelled()


def _report(on_progress: Optional[ProgressCallback], progress: float, done: int, total: int) -> None:
    if on_progress is not None:
        on_progress(progress, done, total)


def _patch_ids(
    store,
    owner_id: int,
    ids: Sequence[int],
    patch: EntryMetaPatch,
    *,
    start_progress: float,
    on_progress: Optional[ProgressCallback],
    cancel_token: Optional[CancellationToken],
) -> BulkMutationResult:
    total = len(ids)
    span = 100.0 - start_progress
    updates = patch.to_updates()
    done = 0
    progress = start_progress

    for entry_id in ids:
        if _is_cancelled(cancel_token):
            logger.info("Bulk meta update cancelled for owner %s at %d/%d", owner_id, done, total)
            return BulkMutationResult(
                status=STATUS_CANCELLED, done=done, total=total, progress=progress, message=CANCELLED_MESSAGE
            )
        try:
            updated = store.update_meta(owner_id, entry_id, updates)
        except (StoreUnavailableError, SQLAlchemyError) as exc:
            logger.error("Bulk meta update failed on entry %s: %s", entry_id, exc)
            return BulkMutationResult(
                status=STATUS_ERROR, done=done, total=total, progress=progress, error=str(exc)
            )
        if updated is None:
            logger.warning("Bulk meta update: entry %s not found for owner %s", entry_id, owner_id)
            return BulkMutationResult(
                status=STATUS_ERROR,
                done=done,
                total=total,
                progress=progress,
                error=f"Entry {entry_id} not found",
            )

        done += 1
        progress = round(start_progress + done / total * span, 2)
        _report(on_progress, progress, done, total)

    return BulkMutationResult(
        status=STATUS_SUCCESS, done=done, total=total, progress=100.0, message=patch.describe(done)
    )


def apply_patch_to_ids(
    store,
    owner_id: int,
    ids: Sequence[int],
    patch: EntryMetaPatch,
    on_progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> BulkMutationResult:
    """Patch exactly the given entries, in the given order."""
    ids = list(dict.fromkeys(ids))
    if not ids:
        return BulkMutationResult(status=STATUS_SUCCESS, done=0, total=0, progress=100.0, message="No entries selected")
    return _patch_ids(
        store,
        owner_id,
        ids,
        patch,
        start_progress=0.0,
        on_progress=on_progress,
        cancel_token=cancel_token,
    )


@dataclass
class IdCollection:
    """Outcome of the collection phase; ``progress`` is the last value reported."""
    ids: List[int]
    progress: float = 0.0
    cancelled: bool = False
    error: Optional[str] = None


def collect_matching_ids(
    store,
    owner_id: int,
    filters: EntryFilters,
    page_size: int = DEFAULT_BULK_PAGE_SIZE,
    on_progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> IdCollection:
    """
    Page through every entry matching ``filters`` and gather their ids.

    A cancellation between two pages or a failing page read stops the walk;
    the ids gathered so far and the progress already reported are kept.
    """
    if page_size <= 0:
        raise ValueError("page_size must be positive")

    result = IdCollection(ids=[])
    page = 1
    while True:
        if _is_cancelled(cancel_token):
            result.cancelled = True
            return result
        try:
            ids, total = store.list_ids(owner_id, filters, page=page, page_size=page_size)
        except (StoreUnavailableError, SQLAlchemyError) as exc:
            logger.error("Collecting entries for bulk update failed on page %d: %s", page, exc)
            result.error = str(exc)
            return result
        if not ids:
            break
        result.ids.extend(ids)

        total_pages = max(1, -(-total // page_size))
        result.progress = min(COLLECT_WEIGHT, round(page / total_pages * COLLECT_WEIGHT, 2))
        _report(on_progress, result.progress, 0, len(result.ids))
        if page >= total_pages:
            break
        page += 1

    result.ids = list(dict.fromkeys(result.ids))
    return result


def apply_patch_to_matching(
    store,
    owner_id: int,
    filters: EntryFilters,
    patch: EntryMetaPatch,
    page_size: int = DEFAULT_BULK_PAGE_SIZE,
    on_progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> BulkMutationResult:
    """
    Patch every entry currently matching ``filters``.

    All ids are gathered before the first write, so patches that move entries
    out of the filter (e.g. assigning an account while filtering "without
    account") do not shift later pages.
    """
    collection = collect_matching_ids(
        store,
        owner_id,
        filters,
        page_size=page_size,
        on_progress=on_progress,
        cancel_token=cancel_token,
    )
    if collection.error is not None:
        return BulkMutationResult(
            status=STATUS_ERROR, done=0, total=0, progress=collection.progress, error=collection.error
        )
    if collection.cancelled:
        return BulkMutationResult(
            status=STATUS_CANCELLED, done=0, total=0, progress=collection.progress, message=CANCELLED_MESSAGE
        )
    ids = collection.ids
    if not ids:
        return BulkMutationResult(status=STATUS_SUCCESS, done=0, total=0, progress=100.0, message="No matching entries")

    logger.info("Bulk meta update for owner %s: %d matching entries", owner_id, len(ids))
    _report(on_progress, COLLECT_WEIGHT, 0, len(ids))
    return _patch_ids(
        store,
        owner_id,
        ids,
        patch,
        start_progress=COLLECT_WEIGHT,
        on_progress=on_progress,
        cancel_token=cancel_token,
    )
