import pytest
from fastapi.testclient import TestClient

from gestionale.domain import jobs
from gestionale.main import app

client = TestClient(app)


def test_job_lifecycle_helpers(owner):
    job = jobs.create_job(user_id=owner["id"], kind=jobs.JOB_KIND_MEMBER_IMPORT, total=10)
    assert (job["status"], job["stage"], job["progress"]) == ("running", "queued", 0)

    updated = jobs.update_job(job["id"], stage="importing", progress=140, processed=4)
    assert updated["progress"] == 100
    assert updated["processed"] == 4

    done = jobs.complete_job(job["id"], status=jobs.STATUS_SUCCEEDED, result_metadata={"inserted": 4})
    assert done["status"] == "succeeded"
    assert done["stage"] == "completed"
    assert done["completed_at"] is not None
    assert jobs.update_job("missing", stage="x") is None


def test_complete_job_rejects_non_final_status(owner):
    job = jobs.create_job(user_id=owner["id"], kind=jobs.JOB_KIND_ENTRY_BULK_META)
    with pytest.raises(ValueError, match="running"):
        jobs.complete_job(job["id"], status=jobs.STATUS_RUNNING)


def test_jobs_are_listed_per_owner(owner, user_factory, auth_headers):
    jobs.create_job(user_id=owner["id"], kind=jobs.JOB_KIND_MEMBER_IMPORT)
    jobs.create_job(user_id=owner["id"], kind=jobs.JOB_KIND_ENTRY_BULK_META)
    stranger = user_factory()
    foreign = jobs.create_job(user_id=stranger["id"], kind=jobs.JOB_KIND_MEMBER_IMPORT)

    listed = client.get("/api/jobs", headers=auth_headers).json()
    assert listed["total_count"] == 2

    filtered = client.get("/api/jobs", headers=auth_headers, params={"kind": "entry_bulk_meta"}).json()
    assert [job["kind"] for job in filtered["jobs"]] == ["entry_bulk_meta"]

    assert client.get(f"/api/jobs/{foreign['id']}", headers=auth_headers).status_code == 404


def test_cancel_running_job_signals_its_token(owner, auth_headers):
    job = jobs.create_job(user_id=owner["id"], kind=jobs.JOB_KIND_MEMBER_IMPORT)
    token = app.state.cancellations.register(job["id"])

    response = client.post(f"/api/jobs/{job['id']}/cancel", headers=auth_headers)

    assert response.status_code == 200
    assert token.is_cancelled()


def test_cancel_errors(owner, auth_headers):
    assert client.post("/api/jobs/nope/cancel", headers=auth_headers).status_code == 404

    finished = jobs.create_job(user_id=owner["id"], kind=jobs.JOB_KIND_MEMBER_IMPORT)
    jobs.complete_job(finished["id"], status=jobs.STATUS_SUCCEEDED)
    assert client.post(f"/api/jobs/{finished['id']}/cancel", headers=auth_headers).status_code == 409

    orphan = jobs.create_job(user_id=owner["id"], kind=jobs.JOB_KIND_MEMBER_IMPORT)
    response = client.post(f"/api/jobs/{orphan['id']}/cancel", headers=auth_headers)
    assert response.status_code == 409
    assert "not running" in response.json()["detail"]
