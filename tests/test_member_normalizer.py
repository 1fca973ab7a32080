import math

import pytest

from gestionale.domain.members.normalizer import (
    DEFAULT_MEMBER_TYPE,
    DEFAULT_MEMBERSHIP_YEAR,
    EmptyPayloadError,
    is_blank_source,
    is_fully_empty,
    member_create_payload,
    member_update_payload,
    normalize_fiscal_code,
    normalize_member,
    prepare_import_rows,
    to_import_row,
)


def test_normalize_member_reads_spreadsheet_headers():
    row = {
        "Nome": "  Mario ",
        "Cognome": "Rossi",
        "Cod. fiscale": " rss mra 80a01 h501u ",
        "Email": " Mario.Rossi@Example.IT ",
        "Cellulare": 3331234567.0,
        "Residente in via": "Via Roma 1",
        "Città": "Milano",
    }

    member = normalize_member(row)

    assert member["first_name"] == "Mario"
    assert member["last_name"] == "Rossi"
    assert member["fiscal_code"] == "RSSMRA80A01H501U"
    assert member["email"] == "mario.rossi@example.it"
    assert member["mobile"] == "3331234567"
    assert member["address"] == "Via Roma 1"
    assert member["city"] == "Milano"
    assert member["member_type"] == DEFAULT_MEMBER_TYPE
    assert member["membership_year"] == DEFAULT_MEMBERSHIP_YEAR


def test_canonical_keys_win_over_header_aliases():
    member = normalize_member({"first_name": "Anna", "Nome": "Ignored", "member_type": "Socio"})

    assert member["first_name"] == "Anna"
    assert member["member_type"] == "Socio"


def test_missing_fiscal_code_is_none_not_empty_string():
    assert normalize_fiscal_code("   ") is None
    assert normalize_fiscal_code(None) is None
    assert normalize_fiscal_code(float("nan")) is None
    assert normalize_member({"Nome": "Luca"})["fiscal_code"] is None


def test_defaults_alone_do_not_make_a_row_non_empty():
    assert is_blank_source({})
    assert is_blank_source({"Nome": None, "Cognome": math.nan, "Tipo": "  "})
    assert not is_blank_source({"Note": "paga a settembre"})
    # With defaults applied the payload always carries type and year
    assert not is_fully_empty(normalize_member({}))


def test_prepare_import_rows_discards_only_fully_empty_rows():
    rows, discarded = prepare_import_rows(
        [
            {},
            {"Nome": "Giulia"},
            {"Cognome": float("nan"), "Email": ""},
            {"Cod. fiscale": "abc"},
        ]
    )

    assert discarded == 2
    assert [row["first_name"] for row in rows] == ["Giulia", ""]
    assert rows[1]["fiscal_code"] == "ABC"
    assert all(row["tmp_id"] for row in rows)
    assert rows[0]["tmp_id"] != rows[1]["tmp_id"]


def test_to_import_row_keeps_existing_tmp_id():
    assert to_import_row({"Nome": "Sara", "tmp_id": "row-7"})["tmp_id"] == "row-7"


def test_member_create_payload_rejects_empty_rows():
    with pytest.raises(EmptyPayloadError):
        member_create_payload({"first_name": "  ", "fiscal_code": ""})


def test_member_create_payload_strips_transient_keys():
    payload = member_create_payload({"first_name": "Marco", "tmp_id": "x", "id": 4})

    assert "tmp_id" not in payload
    assert "id" not in payload
    assert payload["first_name"] == "Marco"
    assert payload["fiscal_code"] is None


def test_member_update_payload_only_touches_sent_fields():
    assert member_update_payload({"first_name": " Anna "}) == {"first_name": "Anna"}
    assert member_update_payload({"fiscal_code": " abc 123 "}) == {"fiscal_code": "ABC123"}


def test_member_update_payload_restores_defaults_for_cleared_type_and_year():
    payload = member_update_payload({"member_type": "", "membership_year": None, "notes": "rinnovo"})

    assert payload == {
        "member_type": DEFAULT_MEMBER_TYPE,
        "membership_year": DEFAULT_MEMBERSHIP_YEAR,
        "notes": "rinnovo",
    }


def test_member_update_payload_rejects_blank_update():
    with pytest.raises(EmptyPayloadError):
        member_update_payload({"first_name": "", "email": "   "})
    with pytest.raises(EmptyPayloadError):
        member_update_payload({})
