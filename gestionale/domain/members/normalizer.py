"""
Canonicalisation of raw member rows.

Rows may come from a spreadsheet (keyed by one of several known header
spellings) or from the API (keyed by canonical field names). Both shapes end
up as the same dict of trimmed strings, with the fiscal code upper-cased and
stripped of whitespace (``None`` when empty) and the email lower-cased.
"""
import math
import re
import uuid
from typing import Any, Dict, List, Mapping, Optional, Tuple

DEFAULT_MEMBER_TYPE = "Tesserato"
DEFAULT_MEMBERSHIP_YEAR = "25/26"

MEMBER_FIELDS = (
    "first_name",
    "last_name",
    "fiscal_code",
    "mobile",
    "address",
    "city",
    "email",
    "member_type",
    "membership_year",
    "payment_status",
    "notes",
)

# Spreadsheet header spellings seen in the association's files, first match wins
HEADER_ALIASES: Dict[str, tuple] = {
    "first_name": ("Nome", "NOME"),
    "last_name": ("Cognome", "COGNOME"),
    "fiscal_code": ("Cod. fiscale", "Codice Fiscale", "COD. FISCALE", "Codice fiscale", "CF"),
    "mobile": ("Cellulare", "Telefono", "CELLULARE"),
    "address": ("Residente in via", "Indirizzo", "VIA"),
    "city": ("Città", "Citta", "CITTA"),
    "email": ("Email", "E-mail", "EMAIL"),
    "member_type": ("Tipo", "TIPO"),
    "membership_year": ("Anno 25/26", "Anno", "ANNO"),
    "payment_status": ("Pagamento", "PAGAMENTO"),
    "notes": ("Note", "NOTE"),
}

_WHITESPACE = re.compile(r"\s+")


def clean_text(value: Any) -> str:
    """Trimmed string form of a cell; None/NaN become ''."""
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            # Spreadsheet readers hand back phone numbers as floats
            return str(int(value))
    return str(value).strip()


def normalize_fiscal_code(value: Any) -> Optional[str]:
    code = _WHITESPACE.sub("", clean_text(value)).upper()
    return code or None


def normalize_email(value: Any) -> str:
    return clean_text(value).lower()


def _lookup(row: Mapping[str, Any], field: str) -> Any:
    if field in row:
        return row[field]
    for alias in HEADER_ALIASES.get(field, ()):
        value = row.get(alias)
        if clean_text(value):
            return value
    return None


def normalize_member(row: Mapping[str, Any], apply_defaults: bool = True) -> Dict[str, Any]:
    """
    Return the canonical member payload for one raw row; never raises for missing fields.

    With ``apply_defaults=False`` the type/year defaults are left blank, which
    is the shape ``is_fully_empty`` needs to judge what the source row held.
    """
    row = row or {}
    normalized = {
        "first_name": clean_text(_lookup(row, "first_name")),
        "last_name": clean_text(_lookup(row, "last_name")),
        "fiscal_code": normalize_fiscal_code(_lookup(row, "fiscal_code")),
        "mobile": clean_text(_lookup(row, "mobile")),
        "address": clean_text(_lookup(row, "address")),
        "city": clean_text(_lookup(row, "city")),
        "email": normalize_email(_lookup(row, "email")),
        "member_type": clean_text(_lookup(row, "member_type")),
        "membership_year": clean_text(_lookup(row, "membership_year")),
        "payment_status": clean_text(_lookup(row, "payment_status")),
        "notes": clean_text(_lookup(row, "notes")),
    }
    if apply_defaults:
        normalized["member_type"] = normalized["member_type"] or DEFAULT_MEMBER_TYPE
        normalized["membership_year"] = normalized["membership_year"] or DEFAULT_MEMBERSHIP_YEAR
    return normalized


def is_fully_empty(row: Mapping[str, Any]) -> bool:
    """True only when every member field is blank; one populated field keeps the row."""
    return not any(clean_text(row.get(field)) for field in MEMBER_FIELDS)


def is_blank_source(row: Mapping[str, Any]) -> bool:
    """True when the raw row carries no member data before defaults are applied."""
    return is_fully_empty(normalize_member(row, apply_defaults=False))


def new_tmp_id() -> str:
    return uuid.uuid4().hex


def to_import_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Normalize a raw row and tag it with a session-local temporary id."""
    row = row or {}
    normalized = normalize_member(row)
    normalized["tmp_id"] = clean_text(row.get("tmp_id")) or new_tmp_id()
    return normalized


def prepare_import_rows(raw_rows: List[Mapping[str, Any]]) -> Tuple[List[Dict[str, Any]], int]:
    """
    Normalize a batch of raw rows and discard the fully empty ones.

    Returns:
        Tuple of (rows, discarded_empty_count)
    """
    rows: List[Dict[str, Any]] = []
    discarded = 0
    for raw in raw_rows:
        if is_blank_source(raw):
            discarded += 1
            continue
        rows.append(to_import_row(raw))
    return rows, discarded


def member_payload(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Strip transient keys (tmp_id, ...) so only persisted member fields remain."""
    return {field: row.get(field) for field in MEMBER_FIELDS}


class EmptyPayloadError(ValueError):
    """Raised when a create/update request carries no member data at all."""


def member_create_payload(data: Mapping[str, Any]) -> Dict[str, Any]:
    if is_blank_source(data):
        raise EmptyPayloadError("Empty row: no member data to save")
    return member_payload(normalize_member(data))


def member_update_payload(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Normalize only the fields present in ``data``; the rest of the record is left alone."""
    provided = {field: data[field] for field in MEMBER_FIELDS if field in data}
    if not any(clean_text(value) for value in provided.values()):
        raise EmptyPayloadError("Empty update: no member data to save")

    normalized = normalize_member(provided, apply_defaults=False)
    payload = {field: normalized[field] for field in provided}
    for field, default in (("member_type", DEFAULT_MEMBER_TYPE), ("membership_year", DEFAULT_MEMBERSHIP_YEAR)):
        if field in payload and not payload[field]:
            payload[field] = default
    return payload
