from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from applytrack.api.deps import get_db, get_services
from applytrack.core.runtime import Services
from applytrack.db.repositories import Repository
from applytrack.errors import BatchFormatError
from applytrack.types import ALL_USERS, STATUSES

router = APIRouter(tags=["web"])
templates = Jinja2Templates(
    directory=str(Path(__file__).resolve().parents[1] / "web" / "templates")
)


@router.get("/", response_class=HTMLResponse)
def dashboard(request: Request, user_id: str | None = None, db: Session = Depends(get_db)) -> HTMLResponse:
    repo = Repository(db)
    applications = repo.list_applications(user_id=user_id)
    grouped = {status: [row for row in applications if row.status == status] for status in STATUSES}
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "users": repo.list_users(),
            "selected_user_id": user_id,
            "grouped": grouped,
            "statuses": STATUSES,
            "all_users": ALL_USERS,
        },
    )


@router.post("/web/users")
def create_user(
    first_name: str = Form(...),
    last_name: str = Form(""),
    email: str = Form(...),
    db: Session = Depends(get_db),
):
    try:
        Repository(db).create_user(first_name=first_name, last_name=last_name, emails=[email])
    except ValueError:
        return RedirectResponse(url="/?error=user", status_code=303)
    return RedirectResponse(url="/", status_code=303)


@router.post("/web/applications/{application_id}/status")
def update_status(
    application_id: str,
    status: str = Form(...),
    db: Session = Depends(get_db),
):
    try:
        Repository(db).update_application_status(application_id, status)
    except ValueError:
        return RedirectResponse(url="/?error=status", status_code=303)
    return RedirectResponse(url="/", status_code=303)


@router.post("/web/applications/bulk/csv", response_class=HTMLResponse)
def bulk_csv(
    request: Request,
    file: UploadFile = File(...),
    services: Services = Depends(get_services),
) -> HTMLResponse:
    content = file.file.read()
    if len(content) > services.settings.max_upload_bytes:
        return templates.TemplateResponse(
            request,
            "bulk_result.html",
            {
                "summary": None,
                "error": f"CSV exceeds {services.settings.max_upload_mb}MB",
                "source": file.filename,
            },
            status_code=413,
        )
    try:
        summary = services.pipeline.bulk_add_from_csv(content)
    except BatchFormatError as exc:
        return templates.TemplateResponse(
            request,
            "bulk_result.html",
            {"summary": None, "error": str(exc), "source": file.filename},
            status_code=400,
        )
    return templates.TemplateResponse(
        request,
        "bulk_result.html",
        {"summary": summary, "error": None, "source": file.filename},
    )


@router.post("/web/applications/bulk/urls", response_class=HTMLResponse)
async def bulk_urls(
    request: Request,
    urls: str = Form(...),
    user_id: str = Form(ALL_USERS),
    services: Services = Depends(get_services),
) -> HTMLResponse:
    lines = [line for line in urls.splitlines() if line.strip()]
    summary = await services.pipeline.bulk_add_from_urls(lines, user_id=user_id)
    return templates.TemplateResponse(
        request,
        "bulk_result.html",
        {"summary": summary, "error": None, "source": "URL list"},
    )


@router.get("/applications/{application_id}", response_class=HTMLResponse)
def application_detail(application_id: str, request: Request, db: Session = Depends(get_db)) -> HTMLResponse:
    repo = Repository(db)
    application = repo.get_application(application_id)
    if not application:
        return templates.TemplateResponse(
            request,
            "not_found.html",
            {"message": "Application not found"},
            status_code=404,
        )

    return templates.TemplateResponse(
        request,
        "application_detail.html",
        {
            "application": application,
            "scores": repo.list_resume_scores(application_id),
            "statuses": STATUSES,
        },
    )
