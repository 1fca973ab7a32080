from fastapi.testclient import TestClient

from gestionale.main import app

client = TestClient(app)


def _create(headers, **payload):
    response = client.post("/api/teachers", headers=headers, json=payload)
    assert response.status_code == 201, response.text
    return response.json()["teacher"]


def test_teachers_are_listed_by_name_for_every_user(admin_headers, auth_headers):
    _create(admin_headers, full_name=" Zoe Riva ", courses=["Yoga", " ", "Pilates"])
    _create(admin_headers, full_name="Anna Conti")

    response = client.get("/api/teachers", headers=auth_headers)

    assert response.status_code == 200
    teachers = response.json()["teachers"]
    assert [teacher["full_name"] for teacher in teachers] == ["Anna Conti", "Zoe Riva"]
    assert teachers[0]["courses"] == []
    assert teachers[1]["courses"] == ["Yoga", "Pilates"]


def test_only_admins_maintain_the_registry(admin_headers, auth_headers):
    teacher = _create(admin_headers, full_name="Anna Conti")

    assert client.post("/api/teachers", headers=auth_headers, json={"full_name": "X"}).status_code == 403
    forbidden = client.post(f"/api/teachers/{teacher['id']}/update", headers=auth_headers, json={"courses": ["Zumba"]})
    assert forbidden.status_code == 403


def test_create_requires_a_name(admin_headers):
    assert client.post("/api/teachers", headers=admin_headers, json={"full_name": "   "}).status_code == 400
    assert client.post("/api/teachers", headers=admin_headers, json={"courses": ["Yoga"]}).status_code == 422


def test_update_courses_and_name(admin_headers):
    teacher = _create(admin_headers, full_name="Anna Conti", courses=["Yoga"])

    courses = client.post(
        f"/api/teachers/{teacher['id']}/update", headers=admin_headers, json={"courses": ["Yoga", "Zumba"]}
    )
    assert courses.status_code == 200
    assert courses.json()["teacher"]["courses"] == ["Yoga", "Zumba"]
    assert courses.json()["teacher"]["full_name"] == "Anna Conti"

    renamed = client.post(f"/api/teachers/{teacher['id']}/update", headers=admin_headers, json={"full_name": "Anna Conti Rossi"})
    assert renamed.json()["teacher"]["full_name"] == "Anna Conti Rossi"
    assert renamed.json()["teacher"]["courses"] == ["Yoga", "Zumba"]


def test_update_validation(admin_headers):
    teacher = _create(admin_headers, full_name="Anna Conti")

    empty = client.post(f"/api/teachers/{teacher['id']}/update", headers=admin_headers, json={})
    assert empty.status_code == 400
    assert empty.json()["detail"] == "No fields to update"
    assert client.post(f"/api/teachers/{teacher['id']}/update", headers=admin_headers, json={"full_name": ""}).status_code == 400
    assert client.post("/api/teachers/9999/update", headers=admin_headers, json={"courses": []}).status_code == 404
