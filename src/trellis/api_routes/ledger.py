"""Context, conversation, iteration and reference route handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter

from trellis.api_routes.common import (
    _domain_error,
    _error_response,
    _optional_str,
    _parse_json_body,
    _validate_actor,
)
from trellis.attachments import store_image
from trellis.conversation import record_answer
from trellis.core import TrellisDB
from trellis.errors import TrellisError


def create_router() -> APIRouter:
    """Build the APIRouter for the per-task ledger endpoints."""
    from fastapi import APIRouter, Depends
    from fastapi.responses import JSONResponse

    from trellis.http_api import _get_attachments_root, _get_db

    router = APIRouter()

    # -- Context -------------------------------------------------------------

    @router.get("/task/{task_id}/context")
    async def api_context(task_id: str, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        try:
            ctx = db.get_context(task_id)
        except TrellisError as e:
            return _domain_error(e)
        if ctx is None:
            return _error_response(f"Task {task_id} has no context", "context_not_found", 404)
        return JSONResponse(ctx.to_dict())

    @router.post("/task/{task_id}/context")
    async def api_set_context(task_id: str, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, err = _validate_actor(body.get("actor", "api"))
        if err:
            return err
        notes = _optional_str(body, "notes")
        if isinstance(notes, JSONResponse):
            return notes
        try:
            ctx = db.set_context(task_id, body.get("original_request", ""), notes=notes, actor=actor)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(ctx.to_dict(), status_code=201)

    @router.patch("/task/{task_id}/context")
    async def api_update_context(task_id: str, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, err = _validate_actor(body.get("actor", "api"))
        if err:
            return err
        original_request = _optional_str(body, "original_request")
        if isinstance(original_request, JSONResponse):
            return original_request
        notes = _optional_str(body, "notes")
        if isinstance(notes, JSONResponse):
            return notes
        try:
            ctx = db.update_context(task_id, original_request=original_request, notes=notes, actor=actor)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(ctx.to_dict())

    @router.post("/task/{task_id}/conversation")
    async def api_add_conversation(task_id: str, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, err = _validate_actor(body.get("actor", "api"))
        if err:
            return err
        question = body.get("question", "")
        answer = body.get("answer", "")
        try:
            entry = record_answer(db, task_id, question, answer, actor=actor)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(entry.to_dict(), status_code=201)

    # -- Iterations ----------------------------------------------------------

    @router.get("/task/{task_id}/iterations")
    async def api_iterations(task_id: str, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        try:
            iterations = db.list_iterations(task_id)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse([i.to_dict() for i in iterations])

    @router.post("/task/{task_id}/iterations")
    async def api_add_iteration(task_id: str, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, err = _validate_actor(body.get("actor", "api"))
        if err:
            return err
        optional: dict[str, str | None] = {}
        for key in ("lessons", "files_touched"):
            value = _optional_str(body, key)
            if isinstance(value, JSONResponse):
                return value
            optional[key] = value
        try:
            iteration = db.add_iteration(
                task_id,
                body.get("approach", ""),
                body.get("outcome", ""),
                lessons=optional["lessons"],
                files_touched=optional["files_touched"],
                actor=actor,
            )
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(iteration.to_dict(), status_code=201)

    # -- References ----------------------------------------------------------

    @router.get("/task/{task_id}/references")
    async def api_references(task_id: str, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        try:
            refs = db.list_references(task_id, kind=request.query_params.get("kind"))
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse([r.to_dict() for r in refs])

    @router.post("/task/{task_id}/references")
    async def api_add_reference(task_id: str, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, err = _validate_actor(body.get("actor", "api"))
        if err:
            return err
        try:
            ref = db.add_reference(
                task_id,
                body.get("kind", ""),
                body.get("content", ""),
                description=body.get("description") or "",
                actor=actor,
            )
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(ref.to_dict(), status_code=201)

    @router.post("/task/{task_id}/references/image")
    async def api_add_image(task_id: str, request: Request, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, err = _validate_actor(body.get("actor", "api"))
        if err:
            return err
        source = body.get("source")
        if not isinstance(source, str) or not source:
            return _error_response("source must be a non-empty string", "validation_error", 400)
        try:
            db.get_task(task_id)
            stored = await store_image(
                source,
                _get_attachments_root(),
                task_id,
                filename=body.get("filename"),
                mime_type=body.get("mime_type"),
            )
            ref = db.add_reference(
                task_id,
                "image",
                stored.relative_path,
                description=body.get("description") or "",
                original_filename=stored.original_filename,
                mime_type=stored.mime_type,
                actor=actor,
            )
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse({**ref.to_dict(), "size": stored.size}, status_code=201)

    @router.delete("/reference/{reference_id}")
    async def api_delete_reference(reference_id: int, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        if not db.delete_reference(reference_id, actor="api"):
            return _error_response(f"Reference not found: {reference_id}", "not_found", 404)
        return JSONResponse({"status": "deleted", "reference_id": reference_id})

    # -- Replay --------------------------------------------------------------

    @router.get("/task/{task_id}/full-context")
    async def api_full_context(task_id: str, db: TrellisDB = Depends(_get_db)) -> JSONResponse:
        try:
            full = db.get_full_context(task_id)
        except TrellisError as e:
            return _domain_error(e)
        return JSONResponse(
            {
                **full.to_dict(),
                "files": [f.to_dict() for f in db.get_files(task_id)],
                "issues": [i.to_dict() for i in db.get_issues(task_id)],
            }
        )

    return router
