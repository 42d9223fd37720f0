"""Task, subtask, file, issue and event route handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter

from trellis.api_routes.common import (
    _domain_error,
    _error_response,
    _optional_str,
    _parse_json_body,
    _parse_pagination,
    _safe_int,
    _validate_actor,
)
from trellis.core import TrellisDB
from trellis.db_base import OPEN
from trellis.errors import TrellisError


def create_router() -> APIRouter:
    """Build the APIRouter for task lifecycle endpoints.

    NOTE: All handlers are async despite doing synchronous SQLite I/O.
    This serializes DB access on the event loop thread, avoiding
    concurrent multi-thread access to the shared DB connection.
    """
    from fastapi import APIRouter, Depends
    from fastapi.responses import JSONResponse

    from trellis.http_api import _get_db

    router = APIRouter()

    @router.get("/tasks")
    async def api_tasks(request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        params = request.query_params
        page = _parse_pagination(params)
        if isinstance(page, JSONResponse):
            return page
        limit, offset = page
        tasks = db.list_tasks(
            project_id=params.get("project_id"),
            status=params.get("status"),
            parent_id=params.get("parent_id"),
            limit=limit + 1,
            offset=offset,
        )
        has_more = len(tasks) > limit
        return JSONResponse(
            {"tasks": [t.to_dict() for t in tasks[:limit]], "limit": limit, "offset": offset, "has_more": has_more}
        )

    @router.post("/tasks")
    async def api_create_task(request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, err = _validate_actor(body.get("actor", "api"))
        if err:
            return err
        try:
            task = db.create_task(
                body.get("title", ""),
                description=body.get("description") or "",
                project_id=body.get("project_id"),
                parent_id=body.get("parent_id"),
                status=body.get("status", "not_started"),
                completion=body.get("completion", 0),
                actor=actor,
            )
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(task.to_dict(), status_code=201)

    @router.get("/task/{task_id}")
    async def api_task_detail(task_id: str, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        try:
            task = db.get_task(task_id)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(
            {
                **task.to_dict(),
                "files": [f.to_dict() for f in db.get_files(task_id)],
                "issues": [i.to_dict() for i in db.get_issues(task_id)],
            }
        )

    @router.patch("/task/{task_id}")
    async def api_update_task(task_id: str, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, err = _validate_actor(body.get("actor", "api"))
        if err:
            return err
        fields: dict[str, Any] = {}
        for key in ("title", "description", "status", "parent_id"):
            value = _optional_str(body, key)
            if isinstance(value, JSONResponse):
                return value
            fields[key] = value
        try:
            task = db.update_task(task_id, completion=body.get("completion"), actor=actor, **fields)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(task.to_dict())

    @router.delete("/task/{task_id}")
    async def api_delete_task(task_id: str, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        if not db.delete_task(task_id):
            return _error_response(f"Task not found: {task_id}", "not_found", 404)
        return JSONResponse({"status": "deleted", "task_id": task_id})

    @router.post("/task/{task_id}/status")
    async def api_update_status(task_id: str, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, err = _validate_actor(body.get("actor", "api"))
        if err:
            return err
        try:
            task = db.update_status(task_id, body.get("status", ""), actor=actor)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(task.to_dict())

    @router.post("/task/{task_id}/completion")
    async def api_update_completion(task_id: str, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, err = _validate_actor(body.get("actor", "api"))
        if err:
            return err
        try:
            task = db.update_completion(task_id, body.get("completion", ""), actor=actor)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(task.to_dict())

    @router.get("/task/{task_id}/subtasks")
    async def api_subtasks(task_id: str, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        try:
            subtasks = db.get_subtasks(task_id)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse([t.to_dict() for t in subtasks])

    @router.post("/task/{task_id}/subtasks")
    async def api_create_subtask(task_id: str, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, err = _validate_actor(body.get("actor", "api"))
        if err:
            return err
        try:
            task = db.create_subtask(
                task_id, body.get("title", ""), description=body.get("description") or "", actor=actor
            )
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(task.to_dict(), status_code=201)

    # -- Files ---------------------------------------------------------------

    @router.get("/task/{task_id}/files")
    async def api_files(task_id: str, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        try:
            files = db.get_files(task_id)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse([f.to_dict() for f in files])

    @router.post("/task/{task_id}/files")
    async def api_add_file(task_id: str, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, err = _validate_actor(body.get("actor", "api"))
        if err:
            return err
        change_note = _optional_str(body, "change_note")
        if isinstance(change_note, JSONResponse):
            return change_note
        try:
            record = db.add_file(task_id, body.get("path", ""), change_note=change_note, actor=actor)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(record.to_dict(), status_code=201)

    # -- Issues --------------------------------------------------------------

    @router.get("/task/{task_id}/issues")
    async def api_issues(task_id: str, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        try:
            issues = db.get_issues(task_id, status=request.query_params.get("status"))
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse([i.to_dict() for i in issues])

    @router.post("/task/{task_id}/issues")
    async def api_add_issue(task_id: str, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, err = _validate_actor(body.get("actor", "api"))
        if err:
            return err
        description = _optional_str(body, "description")
        if isinstance(description, JSONResponse):
            return description
        try:
            issue = db.add_issue(
                task_id,
                body.get("title", ""),
                description=description,
                status=body.get("status", OPEN),
                actor=actor,
            )
            task = db.get_task(task_id)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse({**issue.to_dict(), "task_status": task.status}, status_code=201)

    @router.patch("/issue/{issue_id}")
    async def api_update_issue(issue_id: int, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, err = _validate_actor(body.get("actor", "api"))
        if err:
            return err
        try:
            issue = db.update_issue_status(issue_id, body.get("status", ""), actor=actor)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(issue.to_dict())

    # -- Activity ------------------------------------------------------------

    @router.get("/task/{task_id}/events")
    async def api_task_events(task_id: str, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        limit = _safe_int(request.query_params.get("limit", "50"), "limit", min_value=1)
        if not isinstance(limit, int):
            return limit
        try:
            events = db.get_task_events(task_id, limit=limit)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(events)

    @router.get("/activity")
    async def api_activity(request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        limit = _safe_int(request.query_params.get("limit", "20"), "limit", min_value=1)
        if not isinstance(limit, int):
            return limit
        since = request.query_params.get("since")
        events = db.get_events_since(since, limit=limit) if since else db.get_recent_events(limit)
        return JSONResponse(events)

    @router.get("/stats")
    async def api_stats(db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse(db.get_stats())

    return router
