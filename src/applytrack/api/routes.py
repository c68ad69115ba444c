from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from applytrack.api.deps import get_db, get_services
from applytrack.api.schemas import (
    ApplicationCreateRequest,
    ApplicationResponse,
    ApplicationUpdateRequest,
    BulkUrlRequest,
    KeywordsResponse,
    LatexCompileRequest,
    LatexResumeRequest,
    ResumeResponse,
    ScoreRequest,
    ScoreResponse,
    StatusUpdateRequest,
    UserCreateRequest,
    UserResponse,
)
from applytrack.core.analysis import extract_application_keywords, score_application_resume
from applytrack.core.resumes import ResumeService
from applytrack.core.runtime import Services
from applytrack.db.repositories import Repository
from applytrack.errors import (
    BatchFormatError,
    FileStoreError,
    GatewayError,
    LatexCompileError,
    RowValidationError,
    UserResolutionError,
)
from applytrack.types import IngestionSummary

router = APIRouter(prefix="/api", tags=["api"])


def _not_found_or_bad_request(exc: ValueError) -> HTTPException:
    message = str(exc)
    status_code = 404 if message.endswith("not found") else 400
    return HTTPException(status_code=status_code, detail=message)


def _resume_service(db: Session, services: Services) -> ResumeService:
    return ResumeService(
        db,
        gateway=services.gateway,
        file_store=services.file_store,
        latex_compiler=services.settings.latex_compiler,
        latex_timeout_sec=services.settings.latex_timeout_sec,
    )


# users


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(payload: UserCreateRequest, db: Session = Depends(get_db)) -> UserResponse:
    repo = Repository(db)
    try:
        user = repo.create_user(
            first_name=payload.first_name,
            last_name=payload.last_name,
            emails=payload.emails,
            default_email=payload.default_email,
            password=payload.password,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return UserResponse.model_validate(user)


@router.get("/users", response_model=list[UserResponse])
def list_users(db: Session = Depends(get_db)) -> list[UserResponse]:
    return [UserResponse.model_validate(user) for user in Repository(db).list_users()]


@router.delete("/users/{user_id}", status_code=204)
def delete_user(user_id: str, db: Session = Depends(get_db)) -> Response:
    try:
        Repository(db).delete_user(user_id)
    except ValueError as exc:
        raise _not_found_or_bad_request(exc) from exc
    return Response(status_code=204)


# applications


@router.post("/applications", response_model=list[ApplicationResponse], status_code=201)
def create_application(
    payload: ApplicationCreateRequest,
    services: Services = Depends(get_services),
) -> list[ApplicationResponse]:
    try:
        rows = services.pipeline.add_application(payload.model_dump())
    except RowValidationError as exc:
        raise HTTPException(status_code=400, detail={"message": "Invalid request body", "errors": exc.fields}) from exc
    except UserResolutionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [ApplicationResponse.model_validate(row) for row in rows]


@router.get("/applications", response_model=list[ApplicationResponse])
def list_applications(
    user_id: str | None = None,
    status: str | None = None,
    db: Session = Depends(get_db),
) -> list[ApplicationResponse]:
    rows = Repository(db).list_applications(user_id=user_id, status=status)
    return [ApplicationResponse.model_validate(row) for row in rows]


@router.get("/applications/{application_id}", response_model=ApplicationResponse)
def get_application(application_id: str, db: Session = Depends(get_db)) -> ApplicationResponse:
    application = Repository(db).get_application(application_id)
    if not application:
        raise HTTPException(status_code=404, detail="Application not found")
    return ApplicationResponse.model_validate(application)


@router.patch("/applications/{application_id}", response_model=ApplicationResponse)
def update_application(
    application_id: str,
    payload: ApplicationUpdateRequest,
    db: Session = Depends(get_db),
) -> ApplicationResponse:
    try:
        application = Repository(db).update_application(application_id, payload.to_values())
    except ValueError as exc:
        raise _not_found_or_bad_request(exc) from exc
    return ApplicationResponse.model_validate(application)


@router.post("/applications/{application_id}/status", response_model=ApplicationResponse)
def update_application_status(
    application_id: str,
    payload: StatusUpdateRequest,
    db: Session = Depends(get_db),
) -> ApplicationResponse:
    try:
        application = Repository(db).update_application_status(application_id, payload.status)
    except ValueError as exc:
        raise _not_found_or_bad_request(exc) from exc
    return ApplicationResponse.model_validate(application)


@router.delete("/applications/{application_id}", status_code=204)
def delete_application(application_id: str, db: Session = Depends(get_db)) -> Response:
    try:
        Repository(db).delete_application(application_id)
    except ValueError as exc:
        raise _not_found_or_bad_request(exc) from exc
    return Response(status_code=204)


@router.post("/applications/bulk/csv", response_model=IngestionSummary)
def bulk_add_csv(
    file: UploadFile = File(...),
    services: Services = Depends(get_services),
) -> IngestionSummary:
    content = file.file.read()
    if len(content) > services.settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail=f"CSV exceeds {services.settings.max_upload_mb}MB")
    try:
        return services.pipeline.bulk_add_from_csv(content)
    except BatchFormatError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/applications/bulk/urls", response_model=IngestionSummary)
async def bulk_add_urls(
    payload: BulkUrlRequest,
    services: Services = Depends(get_services),
) -> IngestionSummary:
    if not payload.urls:
        raise HTTPException(status_code=400, detail="No URLs provided")
    return await services.pipeline.bulk_add_from_urls(payload.urls, user_id=payload.user_id)


@router.post("/applications/{application_id}/keywords", response_model=KeywordsResponse)
def extract_keywords(
    application_id: str,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
) -> KeywordsResponse:
    try:
        application = extract_application_keywords(Repository(db), services.gateway, application_id=application_id)
    except ValueError as exc:
        raise _not_found_or_bad_request(exc) from exc
    except GatewayError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return KeywordsResponse(
        application_id=application.id,
        keywords=application.keywords_json,
        suggestions=application.suggestions or "",
    )


@router.post("/applications/{application_id}/scores", response_model=ScoreResponse)
def score_resume(
    application_id: str,
    payload: ScoreRequest,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
) -> ScoreResponse:
    try:
        score = score_application_resume(
            Repository(db),
            services.gateway,
            application_id=application_id,
            resume_id=payload.resume_id,
        )
    except ValueError as exc:
        raise _not_found_or_bad_request(exc) from exc
    except GatewayError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return ScoreResponse.model_validate(score)


@router.get("/applications/{application_id}/scores", response_model=list[ScoreResponse])
def list_scores(application_id: str, db: Session = Depends(get_db)) -> list[ScoreResponse]:
    repo = Repository(db)
    if not repo.get_application(application_id):
        raise HTTPException(status_code=404, detail="Application not found")
    return [ScoreResponse.model_validate(row) for row in repo.list_resume_scores(application_id)]


# resumes


@router.get("/users/{user_id}/resumes", response_model=list[ResumeResponse])
def list_resumes(user_id: str, db: Session = Depends(get_db)) -> list[ResumeResponse]:
    repo = Repository(db)
    if not repo.get_user(user_id):
        raise HTTPException(status_code=404, detail="User not found")
    return [
        ResumeResponse.model_validate(item["resume"]).model_copy(
            update={"application_count": item["application_count"]}
        )
        for item in repo.list_resumes(user_id)
    ]


@router.post("/resumes", response_model=ResumeResponse, status_code=201)
def upload_resume(
    user_id: str = Form(...),
    name: str = Form(...),
    company_name: str = Form(""),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
) -> ResumeResponse:
    if file.content_type not in {"application/pdf", "application/octet-stream"}:
        raise HTTPException(status_code=415, detail="Resume must be a PDF")
    content = file.file.read()
    if len(content) > services.settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail=f"Resume exceeds {services.settings.max_upload_mb}MB")

    try:
        resume = _resume_service(db, services).upload_resume(
            user_id=user_id,
            name=name,
            pdf_bytes=content,
            filename=file.filename or "resume.pdf",
            company_name=company_name,
        )
    except ValueError as exc:
        raise _not_found_or_bad_request(exc) from exc
    except (GatewayError, FileStoreError) as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return ResumeResponse.model_validate(resume)


@router.post("/resumes/latex", response_model=ResumeResponse, status_code=201)
def create_latex_resume(
    payload: LatexResumeRequest,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
) -> ResumeResponse:
    try:
        resume = _resume_service(db, services).save_latex_resume(
            user_id=payload.user_id,
            name=payload.name,
            latex_content=payload.latex_content,
        )
    except ValueError as exc:
        raise _not_found_or_bad_request(exc) from exc
    return ResumeResponse.model_validate(resume)


@router.put("/resumes/{resume_id}/latex", response_model=ResumeResponse)
def update_latex_resume(
    resume_id: str,
    payload: LatexResumeRequest,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
) -> ResumeResponse:
    try:
        resume = _resume_service(db, services).save_latex_resume(
            user_id=payload.user_id,
            name=payload.name,
            latex_content=payload.latex_content,
            resume_id=resume_id,
        )
    except ValueError as exc:
        raise _not_found_or_bad_request(exc) from exc
    return ResumeResponse.model_validate(resume)


@router.post("/resumes/compile")
def compile_resume(
    payload: LatexCompileRequest,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
) -> Response:
    try:
        pdf = _resume_service(db, services).compile(payload.latex_content)
    except LatexCompileError as exc:
        raise HTTPException(status_code=422, detail={"message": str(exc), "log": exc.log}) from exc
    return Response(content=pdf, media_type="application/pdf")


@router.delete("/resumes/{resume_id}", status_code=204)
def delete_resume(
    resume_id: str,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
) -> Response:
    try:
        _resume_service(db, services).delete_resume(resume_id)
    except ValueError as exc:
        raise _not_found_or_bad_request(exc) from exc
    except FileStoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return Response(status_code=204)
