import io

import pandas as pd
from fastapi.testclient import TestClient

from gestionale.core.config import settings
from gestionale.main import app

client = TestClient(app)


def _create(headers, **fields):
    response = client.post("/api/tesserati", headers=headers, json=fields)
    assert response.status_code == 201, response.text
    return response.json()


def test_member_crud(auth_headers):
    created = _create(auth_headers, first_name=" Mario ", last_name="Rossi", fiscal_code="rss mra 80a01 h501u")
    assert created["first_name"] == "Mario"
    assert created["fiscal_code"] == "RSSMRA80A01H501U"
    assert created["member_type"] == "Tesserato"

    patched = client.patch(f"/api/tesserati/{created['id']}", headers=auth_headers, json={"city": "Bergamo"})
    assert patched.status_code == 200
    assert patched.json()["city"] == "Bergamo"
    assert patched.json()["first_name"] == "Mario"

    listed = client.get("/api/tesserati", headers=auth_headers)
    assert [member["id"] for member in listed.json()] == [created["id"]]

    deleted = client.delete(f"/api/tesserati/{created['id']}", headers=auth_headers)
    assert deleted.status_code == 204
    assert client.get(f"/api/tesserati/{created['id']}", headers=auth_headers).status_code == 404


def test_duplicate_fiscal_code_is_a_conflict(auth_headers):
    _create(auth_headers, first_name="Mario", fiscal_code="ABC")

    response = client.post("/api/tesserati", headers=auth_headers, json={"first_name": "Altro", "fiscal_code": "abc"})

    assert response.status_code == 409


def test_empty_payloads_are_rejected(auth_headers):
    assert client.post("/api/tesserati", headers=auth_headers, json={"first_name": "  "}).status_code == 400

    created = _create(auth_headers, first_name="Anna")
    response = client.patch(f"/api/tesserati/{created['id']}", headers=auth_headers, json={"notes": ""})
    assert response.status_code == 400


def test_members_are_private_to_their_owner(auth_headers, user_factory):
    created = _create(auth_headers, first_name="Anna")
    stranger = user_factory()

    assert client.get("/api/tesserati", headers=stranger["headers"]).json() == []
    assert client.get(f"/api/tesserati/{created['id']}", headers=stranger["headers"]).status_code == 404
    assert client.delete(f"/api/tesserati/{created['id']}", headers=stranger["headers"]).status_code == 404


def test_member_routes_require_authentication():
    assert client.get("/api/tesserati").status_code in (401, 403)


def test_preview_reports_duplicates_and_conflicts(auth_headers):
    existing = _create(auth_headers, first_name="Old", fiscal_code="ABC")

    response = client.post(
        "/api/tesserati/import/preview",
        headers=auth_headers,
        json={
            "rows": [
                {"Nome": "Mario", "Cod. fiscale": "abc"},
                {"Nome": "Mario bis", "Cod. fiscale": "ABC"},
                {"Nome": "Senza codice"},
                {},
                {"Nome": "Nuovo", "Cod. fiscale": "NEW1"},
            ]
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["duplicates_in_file"] == 1
    assert len(body["valid_rows"]) == 3
    assert len(body["conflicts"]) == 1
    assert body["conflicts"][0]["existing"]["id"] == existing["id"]
    assert body["conflicts"][0]["incoming"]["first_name"] == "Mario"
    assert body["stats"] == {
        "received": 5,
        "empty_discarded": 1,
        "duplicates_in_file": 1,
        "valid": 3,
        "conflicts": 1,
        "new": 2,
    }


def test_plan_requires_alternate_code_for_keep_both(auth_headers):
    existing = _create(auth_headers, first_name="Old", fiscal_code="ABC")

    response = client.post(
        "/api/tesserati/import/plan",
        headers=auth_headers,
        json={"rows": [{"first_name": "New", "fiscal_code": "ABC"}], "choices": {str(existing["id"]): "insert"}},
    )

    assert response.status_code == 422
    assert response.json()["detail"]["missing_alternate_ids"] == [str(existing["id"])]


def test_plan_then_commit(auth_headers):
    keep = _create(auth_headers, first_name="Keep", fiscal_code="AAA")
    overwrite = _create(auth_headers, first_name="Overwrite", fiscal_code="BBB")
    twin = _create(auth_headers, first_name="Twin", fiscal_code="CCC")

    plan = client.post(
        "/api/tesserati/import/plan",
        headers=auth_headers,
        json={
            "rows": [
                {"first_name": "Skip me", "fiscal_code": "AAA"},
                {"first_name": "Overwritten", "fiscal_code": "BBB"},
                {"first_name": "Twin 2", "fiscal_code": "CCC"},
                {"first_name": "Brand new"},
            ],
            "choices": {str(keep["id"]): "skip", str(twin["id"]): "insert"},
            "alternate_fiscal_codes": {str(twin["id"]): "ccc2"},
        },
    )
    assert plan.status_code == 200, plan.text
    body = plan.json()
    assert body["counts"] == {"insert": 2, "overwrite": 1, "skip": 1}
    assert body["actions"][1]["target_id"] == overwrite["id"]
    assert body["actions"][2]["incoming"]["fiscal_code"] == "CCC2"

    commit = client.post("/api/tesserati/import/commit", headers=auth_headers, json={"actions": body["actions"]})
    assert commit.status_code == 200
    result = commit.json()
    assert (result["inserted"], result["updated"], result["skipped"], result["errors"]) == (2, 1, 1, [])

    members = {member["fiscal_code"]: member for member in client.get("/api/tesserati", headers=auth_headers).json()}
    assert members["AAA"]["first_name"] == "Keep"
    assert members["BBB"]["first_name"] == "Overwritten"
    assert members["CCC2"]["first_name"] == "Twin 2"
    assert len(members) == 5


def test_commit_reports_row_errors(auth_headers):
    response = client.post(
        "/api/tesserati/import/commit",
        headers=auth_headers,
        json={
            "actions": [
                {"action": "overwrite", "incoming": {"first_name": "Ghost"}, "target_id": 424242},
                {"action": "insert", "incoming": {"first_name": "Real"}},
            ]
        },
    )

    body = response.json()
    assert body["inserted"] == 1
    assert len(body["errors"]) == 1
    assert body["errors"][0]["incoming"]["first_name"] == "Ghost"


def test_upload_previews_the_members_sheet(auth_headers):
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame([{"Note": "ignora"}]).to_excel(writer, sheet_name="Leggimi", index=False)
        pd.DataFrame(
            [
                {"Nome": "Giulia", "Cognome": "Verdi", "Cod. fiscale": "vrdglu"},
                {"Nome": "Giulia bis", "Cognome": "Verdi", "Cod. fiscale": "VRDGLU"},
            ]
        ).to_excel(writer, sheet_name="Tesserati", index=False)

    response = client.post(
        "/api/tesserati/import/upload",
        headers=auth_headers,
        files={"file": ("iscritti.xlsx", buffer.getvalue(), "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")},
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert [row["fiscal_code"] for row in body["valid_rows"]] == ["VRDGLU"]
    assert body["duplicates_in_file"] == 1


def test_upload_rejects_unsupported_files(auth_headers):
    response = client.post(
        "/api/tesserati/import/upload",
        headers=auth_headers,
        files={"file": ("scan.pdf", b"%PDF-1.4", "application/pdf")},
    )

    assert response.status_code == 400


def test_import_job_runs_in_background_and_records_result(auth_headers):
    response = client.post(
        "/api/tesserati/import/jobs",
        headers=auth_headers,
        json={"actions": [{"action": "insert", "incoming": {"first_name": f"M{i}"}} for i in range(3)]},
    )

    assert response.status_code == 202
    job = response.json()["job"]
    assert job["kind"] == "member_import"
    assert job["total"] == 3

    polled = client.get(f"/api/jobs/{job['id']}", headers=auth_headers).json()["job"]
    assert polled["status"] == "succeeded"
    assert polled["progress"] == 100
    assert polled["processed"] == 3
    assert polled["result_metadata"]["inserted"] == 3
    assert len(client.get("/api/tesserati", headers=auth_headers).json()) == 3


def test_upload_over_the_size_limit_is_refused(auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "upload_max_file_size_mb", 0)

    response = client.post(
        "/api/tesserati/import/upload",
        headers=auth_headers,
        files={"file": ("iscritti.csv", b"Nome\nMario\n", "text/csv")},
    )

    assert response.status_code == 413
