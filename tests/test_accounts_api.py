from fastapi.testclient import TestClient

from gestionale.main import app

client = TestClient(app)


def test_account_crud_is_ordered_by_code(auth_headers):
    bar = client.post("/api/accounts", headers=auth_headers, json={"code": "C", "name": "Bar", "type": "Commerciale"})
    quote = client.post("/api/accounts", headers=auth_headers, json={"code": "A", "name": "Quote"})
    assert bar.status_code == 201
    assert quote.status_code == 201

    listed = client.get("/api/accounts", headers=auth_headers).json()
    assert [account["code"] for account in listed] == ["A", "C"]

    renamed = client.patch(f"/api/accounts/{bar.json()['id']}", headers=auth_headers, json={"name": "Bar sociale"})
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Bar sociale"
    assert renamed.json()["type"] == "Commerciale"

    assert client.delete(f"/api/accounts/{quote.json()['id']}", headers=auth_headers).status_code == 204
    assert [account["code"] for account in client.get("/api/accounts", headers=auth_headers).json()] == ["C"]


def test_account_validation_and_missing_rows(auth_headers):
    assert client.post("/api/accounts", headers=auth_headers, json={"code": ""}).status_code == 422
    assert client.patch("/api/accounts/4242", headers=auth_headers, json={"name": "X"}).status_code == 404
    assert client.delete("/api/accounts/4242", headers=auth_headers).status_code == 404

    created = client.post("/api/accounts", headers=auth_headers, json={"code": "B"}).json()
    assert client.patch(f"/api/accounts/{created['id']}", headers=auth_headers, json={}).status_code == 400


def test_accounts_are_private_to_their_owner(auth_headers, user_factory):
    created = client.post("/api/accounts", headers=auth_headers, json={"code": "C"}).json()
    stranger = user_factory()

    assert client.get("/api/accounts", headers=stranger["headers"]).json() == []
    assert client.delete(f"/api/accounts/{created['id']}", headers=stranger["headers"]).status_code == 404
