"""
Conversion of a SumUp sales export into ledger entry payloads.

Each workbook sheet is one cost centre (e.g. "VENERDI COUNTRY"); only sale
rows ("Vendita") with a description and a gross price become entries.
"""
from datetime import date, datetime
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from gestionale.processors.spreadsheet import read_excel_sheets

logger = logging.getLogger(__name__)

SUMUP_SOURCE = "SumUp"
SALE_TYPE = "Vendita"

ITALIAN_MONTHS = {
    "gen": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "mag": 5,
    "giu": 6,
    "lug": 7,
    "ago": 8,
    "set": 9,
    "ott": 10,
    "nov": 11,
    "dic": 12,
}

VAT_RATE_COLUMNS = ("Percentuale imposta", "Aliquota IVA", "IVA %", "IVA (%)")
VAT_AMOUNT_COLUMNS = ("IVA", "Imposta", "Importo IVA")

_TIME = re.compile(r"^\s*(\d{1,2})(?::(\d{1,2}))?")


def parse_italian_datetime(value: Any) -> Optional[datetime]:
    """
    Parse SumUp's "5 dic 2025, 20:26" format; the time part is optional.

    Spreadsheet cells already typed as dates are passed through.
    """
    if isinstance(value, datetime):
        return value.replace(second=0, microsecond=0)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        return None

    date_part, _, time_part = value.partition(",")
    parts = date_part.split()
    if len(parts) < 3:
        return None

    try:
        day = int(parts[0])
        year = int(parts[2])
    except ValueError:
        return None
    month = ITALIAN_MONTHS.get(parts[1].lower()[:3])
    if not month or not day or not year:
        return None

    hours = minutes = 0
    match = _TIME.match(time_part)
    if match:
        hours = int(match.group(1))
        minutes = int(match.group(2) or 0)

    try:
        return datetime(year, month, day, hours, minutes)
    except ValueError:
        return None


def _parse_decimal(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = str(value).replace("%", "").replace(",", ".").strip()
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def normalize_vat_rate(value: Any) -> Optional[float]:
    """0.22, "0,22", "22%" and "22,00%" all mean 22."""
    rate = _parse_decimal(value)
    if rate is None:
        return None
    if 0 < rate <= 1:
        return round(rate * 100, 2)
    return rate


def _first_present(row: Mapping[str, Any], columns) -> Any:
    for column in columns:
        value = row.get(column)
        if value is not None and value != "":
            return value
    return None


def sumup_row_to_entry(row: Mapping[str, Any], center: str) -> Optional[Dict[str, Any]]:
    """Entry payload for one export row, or None when the row is not an importable sale."""
    operation_datetime = parse_italian_datetime(row.get("Data"))
    if operation_datetime is None:
        return None

    description = row.get("Descrizione")
    gross = _parse_decimal(row.get("Prezzo (lordo)"))
    if not description or not gross:
        return None

    kind = row.get("Tipo")
    if kind and kind != SALE_TYPE:
        return None

    transaction_id = row.get("ID Transazione")
    method = row.get("Metodo di pagamento")
    return {
        "date": operation_datetime.date(),
        "operation_datetime": operation_datetime,
        "description": str(description).strip(),
        "amount_in": gross,
        "amount_out": 0,
        "account_code": None,
        "method": str(method).strip() if method else None,
        "center": center,
        "note": f"{SUMUP_SOURCE} {transaction_id}" if transaction_id else None,
        "nature": None,
        "vat_rate": normalize_vat_rate(_first_present(row, VAT_RATE_COLUMNS)),
        "vat_amount": _parse_decimal(_first_present(row, VAT_AMOUNT_COLUMNS)),
        "source": SUMUP_SOURCE,
    }


def parse_sumup_sheets(sheets: Mapping[str, List[Mapping[str, Any]]]) -> Tuple[List[Dict[str, Any]], int]:
    """
    Returns:
        Tuple of (entry_payloads, discarded_row_count)
    """
    entries: List[Dict[str, Any]] = []
    discarded = 0
    for sheet_name, rows in sheets.items():
        for row in rows:
            entry = sumup_row_to_entry(row, center=sheet_name)
            if entry is None:
                discarded += 1
                continue
            entries.append(entry)
    return entries, discarded


def parse_sumup_workbook(file_content: bytes) -> Tuple[List[Dict[str, Any]], int]:
    sheets = read_excel_sheets(file_content)
    entries, discarded = parse_sumup_sheets(sheets)
    logger.info(
        "SumUp workbook: %d sheet(s), %d sale(s) kept, %d row(s) discarded",
        len(sheets),
        len(entries),
        discarded,
    )
    return entries, discarded
