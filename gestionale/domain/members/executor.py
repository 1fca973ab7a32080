"""
Chunked application of planned member import actions.

Chunks run strictly one after another and every chunk is committed before the
next one starts. Row failures are recorded and the batch carries on; only a
transport failure (``StoreUnavailableError``) stops the whole run.
"""
from dataclasses import dataclass, field
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from gestionale.db.models import StoreUnavailableError
from gestionale.domain.members.normalizer import is_blank_source, member_payload, normalize_member
from gestionale.domain.members.reconciliation import (
    ACTION_INSERT,
    ACTION_OVERWRITE,
    ACTION_SKIP,
    ImportAction,
)
from gestionale.domain.members.store import is_unique_violation
from gestionale.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 200

ProgressCallback = Callable[[int, int], None]


@dataclass
class ImportCommitResult:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    processed: int = 0
    total: int = 0
    cancelled: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
            "processed": self.processed,
            "total": self.total,
            "cancelled": self.cancelled,
        }


class _RowError(Exception):
    """A per-row failure that is recorded on the result instead of aborting the batch."""


def _insert_or_update_by_fiscal_code(store, owner_id: int, payload: Dict[str, Any]) -> str:
    """
    Update the owner's member holding this fiscal code, inserting when none does.

    The insert runs in its own savepoint: when a concurrent writer created the
    same fiscal code after our update found nothing, the unique constraint
    rejects the insert and the update is retried once.
    """
    fiscal_code = payload["fiscal_code"]
    if store.update_by_fiscal_code(owner_id, fiscal_code, payload) > 0:
        return "updated"
    try:
        with store.savepoint():
            store.insert(owner_id, payload)
        return "inserted"
    except IntegrityError as exc:
        if not is_unique_violation(exc):
            raise
        logger.info("Fiscal code %s appeared concurrently; retrying as update", fiscal_code)
        if store.update_by_fiscal_code(owner_id, fiscal_code, payload) > 0:
            return "updated"
        raise


def _apply_action(store, owner_id: int, action: ImportAction) -> str:
    """Apply one action and return the counter it lands in."""
    kind = (action.action or "").strip().lower()
    if kind == ACTION_SKIP:
        return "skipped"

    if is_blank_source(action.incoming or {}):
        return "skipped"

    payload = member_payload(normalize_member(action.incoming or {}))

    if kind == ACTION_OVERWRITE:
        if action.target_id in (None, ""):
            raise _RowError("Missing target id for overwrite")
        if store.update_by_id(owner_id, action.target_id, payload) == 0:
            raise _RowError(f"Member {action.target_id} not found")
        return "updated"

    if kind == ACTION_INSERT:
        if payload["fiscal_code"]:
            return _insert_or_update_by_fiscal_code(store, owner_id, payload)
        store.insert(owner_id, payload)
        return "inserted"

    raise _RowError(f"Invalid action '{action.action}'")


def _describe_error(exc: Exception) -> str:
    origin = getattr(exc, "orig", None)
    return str(origin or exc)


def execute_import_actions(
    store,
    owner_id: int,
    actions: Sequence[ImportAction],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    on_progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> ImportCommitResult:
    """
    Apply ``actions`` in order, ``chunk_size`` at a time.

    Cancellation is checked before each chunk is dispatched; the chunk in
    flight always completes and nothing already committed is undone.
    Progress is reported as ``(processed, total)`` after every chunk.

    Raises:
        StoreUnavailableError: the database could not be reached; counters of
            committed chunks are lost to the caller but their writes persist.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    result = ImportCommitResult(total=len(actions))
    if not actions:
        return result

    for chunk_start in range(0, len(actions), chunk_size):
        if cancel_token is not None and cancel_token.is_cancelled():
            result.cancelled = True
            logger.info(
                "Import cancelled for owner %s after %d/%d action(s)",
                owner_id,
                result.processed,
                result.total,
            )
            break

        chunk = actions[chunk_start:chunk_start + chunk_size]
        chunk_counts = {"inserted": 0, "updated": 0, "skipped": 0}
        chunk_errors: List[Dict[str, Any]] = []

        for action in chunk:
            try:
                with store.savepoint():
                    outcome = _apply_action(store, owner_id, action)
                chunk_counts[outcome] += 1
            except StoreUnavailableError:
                store.rollback()
                raise
            except (_RowError, SQLAlchemyError) as exc:
                chunk_errors.append(
                    {"action": action.action, "incoming": action.incoming, "error": _describe_error(exc)}
                )

        store.commit()

        result.inserted += chunk_counts["inserted"]
        result.updated += chunk_counts["updated"]
        result.skipped += chunk_counts["skipped"]
        result.errors.extend(chunk_errors)
        result.processed += len(chunk)

        logger.info(
            "Import chunk committed for owner %s: %d/%d (inserted=%d updated=%d skipped=%d errors=%d)",
            owner_id,
            result.processed,
            result.total,
            chunk_counts["inserted"],
            chunk_counts["updated"],
            chunk_counts["skipped"],
            len(chunk_errors),
        )
        if on_progress is not None:
            on_progress(result.processed, result.total)

    return result
