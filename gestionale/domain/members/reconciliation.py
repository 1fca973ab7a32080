"""
Member import reconciliation: in-file deduplication, conflict detection
against stored members, and planning of per-row actions.

Nothing in this module writes to the store; the planned actions are applied
by ``gestionale.domain.members.executor``.
"""
from dataclasses import dataclass, field
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from gestionale.domain.members.normalizer import normalize_fiscal_code
from gestionale.domain.members.store import member_to_dict

logger = logging.getLogger(__name__)

ACTION_INSERT = "insert"
ACTION_OVERWRITE = "overwrite"
ACTION_SKIP = "skip"
IMPORT_ACTIONS = (ACTION_INSERT, ACTION_OVERWRITE, ACTION_SKIP)

DEFAULT_CONFLICT_CHOICE = ACTION_OVERWRITE
DEFAULT_LOOKUP_CHUNK_SIZE = 200


class ImportPlanValidationError(ValueError):
    """Raised before any store call when operator choices cannot produce a valid plan."""

    def __init__(self, missing_alternate_ids: List[str], invalid_choices: Optional[Dict[str, str]] = None):
        self.missing_alternate_ids = missing_alternate_ids
        self.invalid_choices = invalid_choices or {}
        parts = []
        if missing_alternate_ids:
            parts.append(
                "An alternate fiscal code is required to keep both records for existing member(s): "
                + ", ".join(missing_alternate_ids)
            )
        if self.invalid_choices:
            parts.append(
                "Invalid conflict choice(s): "
                + ", ".join(f"{key}={value!r}" for key, value in self.invalid_choices.items())
            )
        self.message = "; ".join(parts) or "Invalid import plan"
        super().__init__(self.message)


@dataclass
class DeduplicationResult:
    rows: List[Dict[str, Any]]
    duplicates_in_file: int
    duplicates: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class Conflict:
    """An incoming row whose fiscal code already belongs to a stored member."""
    existing: Dict[str, Any]
    incoming: Dict[str, Any]

    @property
    def existing_id(self) -> Any:
        return self.existing.get("id")

    @property
    def fiscal_code(self) -> Optional[str]:
        return normalize_fiscal_code(self.existing.get("fiscal_code"))


@dataclass
class ImportAction:
    action: str
    incoming: Dict[str, Any]
    target_id: Optional[Any] = None


def deduplicate_rows(rows: Iterable[Mapping[str, Any]]) -> DeduplicationResult:
    """
    Keep the first row for every non-empty fiscal code, in file order.

    Rows without a fiscal code are always kept: several members may
    legitimately lack one.
    """
    first_by_code: Dict[str, Dict[str, Any]] = {}
    kept: List[Dict[str, Any]] = []
    duplicates: List[Dict[str, Any]] = []

    for row in rows:
        row = dict(row)
        code = normalize_fiscal_code(row.get("fiscal_code"))
        row["fiscal_code"] = code
        if code is None:
            kept.append(row)
            continue
        if code in first_by_code:
            duplicates.append({"incoming": row, "first_occurrence": first_by_code[code]})
            continue
        first_by_code[code] = row
        kept.append(row)

    if duplicates:
        logger.info("Dropped %d in-file duplicate row(s) by fiscal code", len(duplicates))
    return DeduplicationResult(rows=kept, duplicates_in_file=len(duplicates), duplicates=duplicates)


def detect_conflicts(
    store,
    owner_id: int,
    rows: Iterable[Mapping[str, Any]],
    chunk_size: int = DEFAULT_LOOKUP_CHUNK_SIZE,
) -> List[Conflict]:
    """
    Find stored members of ``owner_id`` sharing a fiscal code with the incoming rows.

    Lookups go out in chunks of at most ``chunk_size`` codes. At most one
    conflict is returned per existing member id.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    keyed_rows = [row for row in rows if normalize_fiscal_code(row.get("fiscal_code"))]
    if not keyed_rows:
        return []

    codes = list(dict.fromkeys(normalize_fiscal_code(row["fiscal_code"]) for row in keyed_rows))
    existing_by_code: Dict[str, Dict[str, Any]] = {}
    for start in range(0, len(codes), chunk_size):
        chunk = codes[start:start + chunk_size]
        for member in store.find_by_fiscal_codes(owner_id, chunk):
            snapshot = member_to_dict(member)
            existing_by_code.setdefault(normalize_fiscal_code(snapshot["fiscal_code"]), snapshot)

    conflicts: List[Conflict] = []
    seen_ids = set()
    for row in keyed_rows:
        existing = existing_by_code.get(normalize_fiscal_code(row["fiscal_code"]))
        if existing is None or existing["id"] in seen_ids:
            continue
        seen_ids.add(existing["id"])
        conflicts.append(Conflict(existing=existing, incoming=dict(row)))

    logger.info(
        "Conflict check for owner %s: %d code(s) looked up, %d conflict(s)",
        owner_id,
        len(codes),
        len(conflicts),
    )
    return conflicts


def _choice_for(conflict: Conflict, choices: Mapping[str, str]) -> str:
    return (choices.get(str(conflict.existing_id)) or DEFAULT_CONFLICT_CHOICE).strip().lower()


def validate_plan_inputs(
    conflicts: Iterable[Conflict],
    choices: Optional[Mapping[Any, str]] = None,
    alternate_fiscal_codes: Optional[Mapping[Any, str]] = None,
) -> None:
    """Refuse the plan when a keep-both choice has no alternate fiscal code or a choice is unknown."""
    choices = {str(key): value for key, value in (choices or {}).items()}
    alternates = {str(key): value for key, value in (alternate_fiscal_codes or {}).items()}

    missing: List[str] = []
    invalid: Dict[str, str] = {}
    for conflict in conflicts:
        key = str(conflict.existing_id)
        choice = _choice_for(conflict, choices)
        if choice not in IMPORT_ACTIONS:
            invalid[key] = choice
            continue
        if choice == ACTION_INSERT and not normalize_fiscal_code(alternates.get(key)):
            missing.append(key)

    if missing or invalid:
        raise ImportPlanValidationError(missing, invalid)


def check_choices(
    choices: Optional[Mapping[Any, str]] = None,
    alternate_fiscal_codes: Optional[Mapping[Any, str]] = None,
) -> None:
    """Reject explicit choices that can never be valid, without looking at the store."""
    alternates = {str(key): value for key, value in (alternate_fiscal_codes or {}).items()}
    missing: List[str] = []
    invalid: Dict[str, str] = {}
    for key, value in (choices or {}).items():
        choice = (value or DEFAULT_CONFLICT_CHOICE).strip().lower()
        if choice not in IMPORT_ACTIONS:
            invalid[str(key)] = choice
        elif choice == ACTION_INSERT and not normalize_fiscal_code(alternates.get(str(key))):
            missing.append(str(key))
    if missing or invalid:
        raise ImportPlanValidationError(missing, invalid)


def plan_actions(
    rows: Iterable[Mapping[str, Any]],
    conflicts: Iterable[Conflict],
    choices: Optional[Mapping[Any, str]] = None,
    alternate_fiscal_codes: Optional[Mapping[Any, str]] = None,
) -> List[ImportAction]:
    """
    Produce exactly one action per incoming row.

    Choices and alternate codes are keyed by the existing member id; an unset
    choice means overwrite.
    """
    conflicts = list(conflicts)
    validate_plan_inputs(conflicts, choices, alternate_fiscal_codes)

    choices = {str(key): value for key, value in (choices or {}).items()}
    alternates = {str(key): value for key, value in (alternate_fiscal_codes or {}).items()}
    conflict_by_code = {conflict.fiscal_code: conflict for conflict in conflicts if conflict.fiscal_code}

    actions: List[ImportAction] = []
    for row in rows:
        incoming = dict(row)
        code = normalize_fiscal_code(incoming.get("fiscal_code"))
        incoming["fiscal_code"] = code
        conflict = conflict_by_code.get(code) if code else None

        if conflict is None:
            actions.append(ImportAction(action=ACTION_INSERT, incoming=incoming))
            continue

        choice = _choice_for(conflict, choices)
        if choice == ACTION_SKIP:
            actions.append(ImportAction(action=ACTION_SKIP, incoming=incoming))
        elif choice == ACTION_INSERT:
            incoming["fiscal_code"] = normalize_fiscal_code(alternates.get(str(conflict.existing_id)))
            actions.append(ImportAction(action=ACTION_INSERT, incoming=incoming))
        else:
            actions.append(
                ImportAction(action=ACTION_OVERWRITE, incoming=incoming, target_id=conflict.existing_id)
            )

    return actions
