from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
import uvicorn

from applytrack.api.app import create_app
from applytrack.config import get_settings
from applytrack.core.runtime import Services, build_services
from applytrack.db.init import init_database
from applytrack.db.repositories import Repository
from applytrack.db.session import SessionLocal
from applytrack.errors import BatchFormatError, ConfigurationError
from applytrack.logging_config import configure_logging
from applytrack.types import ALL_USERS

app = typer.Typer(help="applytrack CLI")
users_app = typer.Typer(help="Manage users")
apps_app = typer.Typer(help="Import and list applications")

app.add_typer(users_app, name="users")
app.add_typer(apps_app, name="apps")

_INITIALIZED = False


def ensure_initialized() -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    init_database()
    _INITIALIZED = True


def _services() -> Services:
    try:
        return build_services(get_settings(), SessionLocal)
    except ConfigurationError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc


@app.command("init")
def init_cmd() -> None:
    """Initialize database and data directories."""
    configure_logging()
    result = init_database()
    typer.echo(json.dumps({"ok": True, **result}, indent=2))


@users_app.command("add")
def users_add(
    first_name: str = typer.Option(..., "--first-name"),
    last_name: str = typer.Option("", "--last-name"),
    email: list[str] = typer.Option(..., "--email"),
    default_email: str | None = typer.Option(None, "--default-email"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        repo = Repository(db)
        try:
            user = repo.create_user(
                first_name=first_name,
                last_name=last_name,
                emails=email,
                default_email=default_email,
            )
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        typer.echo(json.dumps({"id": user.id, "default_email": user.default_email}, indent=2))


@users_app.command("list")
def users_list() -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        users = Repository(db).list_users()
        typer.echo(
            json.dumps(
                [
                    {"id": user.id, "name": user.full_name, "emails": user.email_addresses}
                    for user in users
                ],
                indent=2,
            )
        )


@apps_app.command("list")
def apps_list(
    user_id: str | None = typer.Option(None, "--user-id"),
    status: str | None = typer.Option(None, "--status"),
    limit: int = typer.Option(50, "--limit"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        rows = Repository(db).list_applications(user_id=user_id, status=status, limit=limit)
        typer.echo(
            json.dumps(
                [
                    {
                        "id": row.id,
                        "company": row.company_name,
                        "title": row.job_title,
                        "location": row.location,
                        "status": row.status,
                        "user_id": row.user_id,
                    }
                    for row in rows
                ],
                indent=2,
            )
        )


@apps_app.command("import-csv")
def apps_import_csv(file: Path = typer.Option(..., "--file", exists=True, readable=True)) -> None:
    configure_logging()
    ensure_initialized()
    services = _services()
    try:
        summary = services.pipeline.bulk_add_from_csv(file.read_bytes())
    except BatchFormatError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(summary.model_dump_json(indent=2))


@apps_app.command("import-urls")
def apps_import_urls(
    file: Path = typer.Option(..., "--file", exists=True, readable=True, help="One job URL per line"),
    user_id: str = typer.Option(ALL_USERS, "--user-id"),
) -> None:
    configure_logging()
    ensure_initialized()
    services = _services()
    urls = [line for line in file.read_text(encoding="utf-8").splitlines() if line.strip()]
    summary = asyncio.run(services.pipeline.bulk_add_from_urls(urls, user_id=user_id))
    typer.echo(summary.model_dump_json(indent=2))


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
) -> None:
    configure_logging()
    ensure_initialized()
    settings = get_settings()
    try:
        app_instance = create_app(settings)
    except ConfigurationError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc
    uvicorn.run(app_instance, host=host or settings.app_host, port=port or settings.app_port)
