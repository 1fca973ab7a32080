from datetime import date, datetime
import io

import pandas as pd
import pytest

from gestionale.domain.entries.sumup import (
    SUMUP_SOURCE,
    normalize_vat_rate,
    parse_italian_datetime,
    parse_sumup_sheets,
    parse_sumup_workbook,
    sumup_row_to_entry,
)


def _sale(**overrides):
    row = {
        "Data": "5 dic 2025, 20:26",
        "Descrizione": "Birra media",
        "Prezzo (lordo)": 5.0,
        "Tipo": "Vendita",
        "ID Transazione": "TX123",
        "Metodo di pagamento": "Carta",
        "Percentuale imposta": "22%",
        "IVA": 0.9,
    }
    row.update(overrides)
    return row


@pytest.mark.parametrize(
    "value,expected",
    [
        ("5 dic 2025, 20:26", datetime(2025, 12, 5, 20, 26)),
        ("12 gen 2024", datetime(2024, 1, 12)),
        ("1 Ago 2023, 9", datetime(2023, 8, 1, 9, 0)),
        (datetime(2025, 1, 2, 3, 4, 59), datetime(2025, 1, 2, 3, 4)),
        (date(2025, 6, 30), datetime(2025, 6, 30)),
    ],
)
def test_parse_italian_datetime(value, expected):
    assert parse_italian_datetime(value) == expected


@pytest.mark.parametrize("value", [None, "", "ieri", "5 xyz 2025", "31 feb 2025, 10:00", 42])
def test_parse_italian_datetime_rejects_garbage(value):
    assert parse_italian_datetime(value) is None


@pytest.mark.parametrize("value", [0.22, "0,22", "22%", "22,00%", 22])
def test_normalize_vat_rate(value):
    assert normalize_vat_rate(value) == 22


def test_normalize_vat_rate_without_value():
    assert normalize_vat_rate(None) is None
    assert normalize_vat_rate("n/d") is None
    assert normalize_vat_rate(0) == 0


def test_sale_row_becomes_an_entry():
    entry = sumup_row_to_entry(_sale(), center="VENERDI COUNTRY")

    assert entry["operation_datetime"] == datetime(2025, 12, 5, 20, 26)
    assert entry["date"] == date(2025, 12, 5)
    assert entry["description"] == "Birra media"
    assert entry["amount_in"] == 5.0
    assert entry["amount_out"] == 0
    assert entry["center"] == "VENERDI COUNTRY"
    assert entry["note"] == "SumUp TX123"
    assert entry["method"] == "Carta"
    assert entry["vat_rate"] == 22
    assert entry["vat_amount"] == 0.9
    assert entry["source"] == SUMUP_SOURCE
    assert entry["account_code"] is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"Tipo": "Rimborso"},
        {"Descrizione": None},
        {"Prezzo (lordo)": None},
        {"Prezzo (lordo)": 0},
        {"Data": "non una data"},
    ],
)
def test_non_sale_rows_are_discarded(overrides):
    assert sumup_row_to_entry(_sale(**overrides), center="BAR") is None


def test_each_sheet_is_a_cost_centre():
    entries, discarded = parse_sumup_sheets(
        {
            "VENERDI COUNTRY": [_sale(), _sale(Tipo="Rimborso")],
            "SABATO": [_sale(Descrizione="Acqua", **{"Prezzo (lordo)": "1,50"})],
        }
    )

    assert discarded == 1
    assert [(entry["center"], entry["description"], entry["amount_in"]) for entry in entries] == [
        ("VENERDI COUNTRY", "Birra media", 5.0),
        ("SABATO", "Acqua", 1.5),
    ]


def test_parse_workbook_reads_every_sheet():
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame([_sale(), _sale(Descrizione="Panino", **{"ID Transazione": "TX124"})]).to_excel(
            writer, sheet_name="VENERDI", index=False
        )
        pd.DataFrame([_sale(Tipo="Rimborso")]).to_excel(writer, sheet_name="SABATO", index=False)

    entries, discarded = parse_sumup_workbook(buffer.getvalue())

    assert len(entries) == 2
    assert discarded == 1
    assert {entry["note"] for entry in entries} == {"SumUp TX123", "SumUp TX124"}
    assert all(entry["center"] == "VENERDI" for entry in entries)


def test_parse_workbook_rejects_non_excel_content():
    with pytest.raises(ValueError):
        parse_sumup_workbook(b"not a workbook")
