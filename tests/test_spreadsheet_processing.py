import io

import pandas as pd
import pytest

from gestionale.processors.spreadsheet import (
    detect_file_type,
    pick_member_sheet,
    process_csv,
    read_excel_sheets,
    read_member_rows,
)


def _workbook(sheets):
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=name, index=False)
    return buffer.getvalue()


def test_detect_file_type():
    assert detect_file_type("Tesserati.XLSX") == "excel"
    assert detect_file_type("export.csv") == "csv"
    with pytest.raises(ValueError):
        detect_file_type("old.xls")
    with pytest.raises(ValueError):
        detect_file_type("scan.pdf")


def test_pick_member_sheet_prefers_the_members_sheet():
    assert pick_member_sheet(["Riepilogo", "TESSERATI 25-26", "Tesserati vecchi"]) == "TESSERATI 25-26"
    assert pick_member_sheet(["Foglio1", "Foglio2"]) == "Foglio1"
    assert pick_member_sheet([]) is None


def test_process_csv_keeps_values_as_text():
    rows = process_csv(b"Nome,Cognome,Cellulare\nMario,Rossi,0331234567\nAnna,,\n")

    assert rows[0] == {"Nome": "Mario", "Cognome": "Rossi", "Cellulare": "0331234567"}
    assert rows[1]["Cognome"] == ""


def test_read_excel_sheets_turns_blank_cells_into_none():
    content = _workbook({"Tesserati": [{"Nome": "Mario", "Note": None}]})

    sheets = read_excel_sheets(content)

    assert list(sheets) == ["Tesserati"]
    assert sheets["Tesserati"][0] == {"Nome": "Mario", "Note": None}


def test_read_member_rows_uses_the_members_sheet():
    content = _workbook(
        {
            "Istruzioni": [{"Testo": "compilare"}],
            "Tesserati": [{"Nome": "Giulia", "Cognome": "Verdi"}],
        }
    )

    rows = read_member_rows("iscrizioni.xlsx", content)

    assert rows == [{"Nome": "Giulia", "Cognome": "Verdi"}]


def test_read_member_rows_rejects_unreadable_workbooks():
    with pytest.raises(ValueError):
        read_member_rows("iscrizioni.xlsx", b"garbage")
