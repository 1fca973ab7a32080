import io
import logging
from typing import Any, Dict, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)

MEMBER_SHEET_HINT = "tesserati"


def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    records = df.to_dict("records")

    # Convert pandas NaN/NaT values to None
    for record in records:
        for key, value in record.items():
            if not isinstance(value, (list, dict)) and pd.isna(value):
                record[key] = None

    return records


def detect_file_type(filename: str) -> str:
    """Return 'csv' or 'excel' for an upload name; anything else is rejected."""
    name = (filename or "").lower()
    if name.endswith(".csv"):
        return "csv"
    if name.endswith(".xlsx"):
        return "excel"
    raise ValueError("Unsupported file type; expected .xlsx or .csv")


def process_csv(file_content: bytes) -> List[Dict[str, Any]]:
    """Process CSV file and return list of dictionaries."""
    df = pd.read_csv(io.BytesIO(file_content), dtype=str, keep_default_na=False)
    return _records(df)


def read_excel_sheets(file_content: bytes) -> Dict[str, List[Dict[str, Any]]]:
    """
    Read every sheet of a workbook.

    Returns:
        Dict with sheet names as keys (workbook order) and row dicts as values
    """
    try:
        sheets = pd.read_excel(io.BytesIO(file_content), sheet_name=None, engine="openpyxl")
    except Exception as e:
        raise ValueError(f"Could not read Excel file: {str(e)}") from e

    return {str(name): _records(df) for name, df in sheets.items()}


def pick_member_sheet(sheet_names: List[str]) -> Optional[str]:
    """The first sheet whose name mentions members, else the first sheet."""
    if not sheet_names:
        return None
    for name in sheet_names:
        if MEMBER_SHEET_HINT in name.lower():
            return name
    return sheet_names[0]


def read_member_rows(filename: str, file_content: bytes) -> List[Dict[str, Any]]:
    """Raw member rows from an uploaded .csv or workbook."""
    file_type = detect_file_type(filename)
    if file_type == "csv":
        return process_csv(file_content)

    sheets = read_excel_sheets(file_content)
    sheet_name = pick_member_sheet(list(sheets))
    if sheet_name is None:
        return []
    logger.info("Reading members from sheet '%s' of %s", sheet_name, filename)
    return sheets[sheet_name]
