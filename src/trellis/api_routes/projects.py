"""Project route handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter

from trellis.api_routes.common import _domain_error, _error_response, _optional_str, _parse_json_body
from trellis.core import TrellisDB
from trellis.errors import TrellisError


def create_router() -> APIRouter:
    """Build the APIRouter for project endpoints."""
    from fastapi import APIRouter, Depends
    from fastapi.responses import JSONResponse

    from trellis.http_api import _get_db

    router = APIRouter()

    @router.get("/projects")
    async def api_projects(db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse([p.to_dict() for p in db.list_projects()])

    @router.post("/projects")
    async def api_create_project(request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        description = _optional_str(body, "description")
        if isinstance(description, JSONResponse):
            return description
        try:
            project = db.create_project(body.get("name", ""), description=description or "")
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(project.to_dict(), status_code=201)

    @router.get("/project/{project_id}")
    async def api_project_detail(project_id: str, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        try:
            project = db.get_project(project_id)
        except TrellisError as e:
            return _domain_error(e)
        tasks = db.list_tasks(project_id=project_id, limit=10000)
        return JSONResponse({**project.to_dict(), "tasks": [t.to_dict() for t in tasks]})

    @router.patch("/project/{project_id}")
    async def api_update_project(project_id: str, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        fields: dict[str, str | None] = {}
        for key in ("name", "description"):
            value = _optional_str(body, key)
            if isinstance(value, JSONResponse):
                return value
            fields[key] = value
        try:
            project = db.update_project(project_id, name=fields["name"], description=fields["description"])
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(project.to_dict())

    @router.delete("/project/{project_id}")
    async def api_delete_project(project_id: str, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        if not db.delete_project(project_id):
            return _error_response(f"Project not found: {project_id}", "not_found", 404)
        return JSONResponse({"status": "deleted", "project_id": project_id})

    return router
