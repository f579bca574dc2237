from __future__ import annotations

import json
from pathlib import Path

import typer
import uvicorn

from talentscout.api.app import create_app
from talentscout.browser.adapter import SCRAPE_MODES, ScrapeAdapter
from talentscout.browser.service import BrowserServiceClient
from talentscout.config import get_settings
from talentscout.core.indexer import EmbeddingIndexer
from talentscout.core.orchestrator import PipelineOrchestrator
from talentscout.core.search import HybridSearchEngine
from talentscout.core.worker import run_worker_forever
from talentscout.db.init import init_database
from talentscout.db.repositories import Repository
from talentscout.db.session import SessionLocal
from talentscout.errors import BrowserServiceUnavailable, ScrapeError
from talentscout.logging_config import configure_logging

app = typer.Typer(help="TalentScout CLI")
talent_app = typer.Typer(help="Manage talent records")

app.add_typer(talent_app, name="talent")

_INITIALIZED = False


def ensure_initialized() -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    init_database(seed_values=False)
    _INITIALIZED = True


@app.command("init")
def init_cmd(seed_values: bool = typer.Option(True, "--seed-values/--no-seed-values")) -> None:
    """Initialize database, directories, and taxonomy seed records."""
    configure_logging()
    result = init_database(seed_values=seed_values)
    typer.echo(json.dumps({"ok": True, **result}, indent=2))


@talent_app.command("create")
def talent_create(
    username: str = typer.Option(..., "--username"),
    name: str = typer.Option("", "--name"),
    website_url: str = typer.Option("", "--website-url"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        repo = Repository(db)
        if repo.get_talent_by_username(username):
            raise typer.BadParameter(f"talent {username} already exists")
        talent = repo.create_talent(username=username, name=name, website_url=website_url)
        typer.echo(json.dumps({"id": talent.id, "username": talent.username, "name": talent.name}, indent=2))


@talent_app.command("status")
def talent_status(talent_id: int = typer.Option(..., "--talent-id")) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        try:
            status = PipelineOrchestrator(db).get_status(talent_id)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        typer.echo(json.dumps(status, indent=2))


@talent_app.command("show")
def talent_show(talent_id: int = typer.Option(..., "--talent-id")) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        repo = Repository(db)
        try:
            talent = repo.require_talent(talent_id)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        typer.echo(json.dumps(repo.talent_profile(talent), indent=2))


@app.command("scrape")
def scrape(
    talent_id: int = typer.Option(..., "--talent-id"),
    url: str = typer.Option("", "--url", help="Defaults to the talent's stored website url"),
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Run the queued stages in this process"),
    mode: str = typer.Option(
        "", "--mode", help=f"One of {', '.join(SCRAPE_MODES)}; only applies with --wait"
    ),
) -> None:
    """Start the ingestion pipeline for one talent."""
    if mode and mode not in SCRAPE_MODES:
        raise typer.BadParameter(f"mode must be one of {', '.join(SCRAPE_MODES)}")
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        orchestrator = PipelineOrchestrator(db, scraper=ScrapeAdapter(mode=mode or None))
        try:
            status = orchestrator.trigger_scrape(talent_id, url) if url else orchestrator.reprocess(talent_id)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        if wait:
            orchestrator.run_pending()
            status = orchestrator.get_status(talent_id)
        typer.echo(json.dumps(status, indent=2))


@app.command("capture")
def capture(
    url: str = typer.Argument(...),
    output: Path = typer.Option(..., "--output", "-o"),
    pdf: bool = typer.Option(False, "--pdf/--screenshot", help="Print to PDF instead of a PNG screenshot"),
    full_page: bool = typer.Option(False, "--full-page"),
) -> None:
    """Save a rendered portfolio page through the browser service."""
    configure_logging()
    client = BrowserServiceClient()
    try:
        client.check_health()
        content = client.render_pdf(url) if pdf else client.screenshot(url, full_page=full_page)
    except (BrowserServiceUnavailable, ScrapeError) as exc:
        typer.echo(json.dumps({"ok": False, "error": str(exc)}, indent=2))
        raise typer.Exit(code=1) from exc
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(content)
    typer.echo(json.dumps({"ok": True, "path": str(output), "bytes": len(content)}, indent=2))


@app.command("reindex")
def reindex(talent_id: int | None = typer.Option(None, "--talent-id", help="Defaults to every talent")) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        repo = Repository(db)
        indexer = EmbeddingIndexer(db)
        talent_ids = [talent_id] if talent_id is not None else [
            talent.id for talent in repo.list_talents(limit=repo.count_talents() or 1)
        ]
        results = []
        for current in talent_ids:
            try:
                vector = indexer.index_talent(current)
            except Exception as exc:
                db.rollback()
                results.append({"talent_id": current, "ok": False, "error": str(exc)})
                continue
            results.append({"talent_id": current, "ok": True, "dimensions": len(vector)})
        typer.echo(json.dumps({"results": results}, indent=2))


@app.command("search")
def search(
    query: str = typer.Argument(""),
    per_page: int | None = typer.Option(None, "--per-page"),
    page: int = typer.Option(1, "--page"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        result = HybridSearchEngine(db).search(query, page_size=per_page, page=page)
        typer.echo(json.dumps(result.model_dump(), indent=2, default=str))


@app.command("worker")
def worker() -> None:
    """Process queued pipeline stages until interrupted."""
    configure_logging()
    ensure_initialized()
    run_worker_forever()


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
) -> None:
    configure_logging()
    ensure_initialized()
    settings = get_settings()
    app_instance = create_app()
    uvicorn.run(app_instance, host=host or settings.app_host, port=port or settings.app_port)


if __name__ == "__main__":
    app()
