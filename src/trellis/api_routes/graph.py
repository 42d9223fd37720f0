"""Dependency graph route handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter

from trellis.api_routes.common import _domain_error, _error_response, _parse_json_body, _validate_actor
from trellis.core import TrellisDB
from trellis.errors import TrellisError


def create_router() -> APIRouter:
    """Build the APIRouter for dependency and readiness endpoints."""
    from fastapi import APIRouter, Depends
    from fastapi.responses import JSONResponse

    from trellis.http_api import _get_db

    router = APIRouter()

    @router.get("/dependencies")
    async def api_dependencies(db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse([d.to_dict() for d in db.get_all_dependencies()])

    @router.post("/dependencies")
    async def api_add_dependency(request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, err = _validate_actor(body.get("actor", "api"))
        if err:
            return err
        dependent_id = body.get("dependent_id")
        depends_on_id = body.get("depends_on_id")
        if not isinstance(dependent_id, str) or not isinstance(depends_on_id, str):
            return _error_response("dependent_id and depends_on_id must be strings", "validation_error", 400)
        try:
            dep = db.add_dependency(dependent_id, depends_on_id, actor=actor)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(dep.to_dict(), status_code=201)

    @router.delete("/dependency/{dependency_id}")
    async def api_remove_dependency(dependency_id: int, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        if not db.remove_dependency(dependency_id, actor="api"):
            return _error_response(f"Dependency not found: {dependency_id}", "not_found", 404)
        return JSONResponse({"status": "removed", "dependency_id": dependency_id})

    @router.get("/task/{task_id}/dependencies")
    async def api_task_dependencies(task_id: str, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        try:
            depends_on = db.get_dependencies(task_id)
            dependents = db.get_dependents(task_id)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(
            {
                "task_id": task_id,
                "depends_on": [d.to_dict() for d in depends_on],
                "dependents": [d.to_dict() for d in dependents],
            }
        )

    @router.get("/task/{task_id}/can-start")
    async def api_can_start(task_id: str, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        try:
            can_start = db.can_start(task_id)
            waiting = [d.to_dict() for d in db.get_dependencies(task_id) if d.depends_on_status != "completed"]
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse({"task_id": task_id, "can_start": can_start, "waiting_on": waiting})

    @router.get("/ready")
    async def api_ready(db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse([t.to_dict() for t in db.get_ready()])

    @router.get("/blocked")
    async def api_blocked(db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse([t.to_dict() for t in db.get_blocked()])

    return router
