"""HTTP API for the trellis task tracker.

A JSON API over the same ``TrellisDB`` the CLI and MCP server use.

Usage:
    trellis api                     # Serve the discovered project on :8377
    trellis api --port 9000
    trellis api --db /path/to.db    # Explicit database file (or $TRELLIS_DB)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from trellis.core import TrellisDB, resolve_db_path

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8377

_db: TrellisDB | None = None


def _get_db() -> TrellisDB:
    """Return the active database connection."""
    from fastapi import HTTPException

    if _db is None:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return _db


def _get_attachments_root() -> Path:
    from trellis.core import attachments_root

    return attachments_root(_get_db().db_path.parent)


def create_app() -> Any:
    """Create the FastAPI application with every task, graph and ledger endpoint."""
    from fastapi import FastAPI
    from fastapi.responses import JSONResponse

    from trellis import __version__
    from trellis.api_routes import graph, ledger, projects, tasks

    app = FastAPI(title="Trellis", version=__version__, docs_url="/api/docs", redoc_url=None)

    for module in (projects, tasks, graph, ledger):
        app.include_router(module.create_router(), prefix="/api")

    @app.get("/api/health")
    async def api_health() -> JSONResponse:
        db = _get_db()
        return JSONResponse({"status": "ok", "schema_version": db.get_schema_version()})

    return app


def main(port: int = DEFAULT_PORT, *, db_path: Path | None = None, host: str = "127.0.0.1") -> None:
    """Open the database and serve the API with uvicorn until interrupted."""
    import uvicorn

    from trellis.logging import setup_logging

    global _db

    resolved = resolve_db_path(db_path)
    _db = TrellisDB.open(resolved, check_same_thread=False)
    setup_logging(resolved.parent)

    app = create_app()
    print(f"Trellis API: http://{host}:{port}/api")
    try:
        uvicorn.run(app, host=host, port=port, log_level="warning")
    finally:
        _db.close()
        _db = None
