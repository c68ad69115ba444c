from __future__ import annotations

from fastapi.testclient import TestClient

from applytrack.db.repositories import Repository
from applytrack.db.session import SessionLocal


def test_csv_upload_from_dashboard_shows_summary_and_board(client: TestClient) -> None:
    created = client.post(
        "/web/users",
        data={"first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com"},
        follow_redirects=False,
    )
    assert created.status_code == 303

    csv_body = (
        "companyName,jobTitle,location,jobUrl,type,category,status\n"
        "Acme,Backend Engineer,Remote,https://acme.com/1,Full-Time,SWE,Applied\n"
        "Beta,Data Scientist,Remote,ftp://beta.com/1,Full-Time,Data Scientist,\n"
    )
    result = client.post(
        "/web/applications/bulk/csv",
        files={"file": ("jobs.csv", csv_body.encode("utf-8"), "text/csv")},
    )
    assert result.status_code == 200
    assert "Succeeded: 1" in result.text
    assert "Failed: 1" in result.text
    assert "jobUrl" in result.text

    dashboard = client.get("/")
    assert dashboard.status_code == 200
    assert "Acme" in dashboard.text
    assert "Beta" not in dashboard.text


def test_url_import_and_status_change_from_web(client: TestClient) -> None:
    client.post("/web/users", data={"first_name": "Ada", "email": "ada@example.com"})

    result = client.post(
        "/web/applications/bulk/urls",
        data={"urls": "https://acme.com/jobs/1\n\nhttps://acme.com/jobs/2\n", "user_id": "all"},
    )
    assert result.status_code == 200
    assert "Applications created: 2" in result.text

    with SessionLocal() as db:
        application = Repository(db).list_applications()[0]

    detail = client.get(f"/applications/{application.id}")
    assert detail.status_code == 200
    assert "Backend Engineer" in detail.text

    moved = client.post(
        f"/web/applications/{application.id}/status",
        data={"status": "Interview"},
        follow_redirects=False,
    )
    assert moved.status_code == 303
    with SessionLocal() as db:
        assert Repository(db).get_application(application.id).status == "Interview"


def test_bad_csv_renders_error_page(client: TestClient) -> None:
    result = client.post(
        "/web/applications/bulk/csv",
        files={"file": ("jobs.csv", b"", "text/csv")},
    )
    assert result.status_code == 400
    assert "CSV file is empty" in result.text


def test_missing_application_renders_not_found(client: TestClient) -> None:
    response = client.get("/applications/does-not-exist")
    assert response.status_code == 404
    assert "Application not found" in response.text


def test_oversized_csv_from_dashboard_is_rejected(client: TestClient, services, monkeypatch) -> None:
    monkeypatch.setattr(services, "settings", services.settings.model_copy(update={"max_upload_mb": 0}))

    result = client.post(
        "/web/applications/bulk/csv",
        files={"file": ("jobs.csv", b"companyName,jobTitle\nAcme,Engineer\n", "text/csv")},
    )

    assert result.status_code == 413
    assert "CSV exceeds 0MB" in result.text
    with SessionLocal() as db:
        assert Repository(db).list_applications() == []
