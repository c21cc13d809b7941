"""
HTTP API.

    GET    /health
    GET    /api/tasks                 POST /api/tasks
    GET    /api/tasks/{id}            PUT  /api/tasks/{id}      DELETE /api/tasks/{id}
    POST   /api/tasks/{id}/pause      POST /api/tasks/{id}/resume
    POST   /api/tasks/{id}/run
    GET    /api/logs                  GET  /api/tasks/{id}/logs
    POST   /api/schedule/parse
    POST   /api/resync

Tasks go over the wire in camelCase. A mutation whose scheduling was
skipped still succeeds; its body carries "degraded": true and the
response has an X-Ritual-Degraded header.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ritual.api.schemas import ParseRequest, TaskCreate, TaskUpdate
from ritual.core.errors import NotFound, ScheduleError, StorageError
from ritual.execution.executor import TaskExecutor
from ritual.schedule.parser import next_occurrence, parse
from ritual.sync.plan import payload_for
from ritual.tasks.service import TaskResult, TaskService
from ritual.tasks.task import to_iso, utcnow

if TYPE_CHECKING:
    from ritual.runtime import Runtime

logger = logging.getLogger(__name__)

DEGRADED_HEADER = "X-Ritual-Degraded"


def json_error(status_code: int, *, error: str, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, **extra},
    )


def _result_response(result: TaskResult, status_code: int = 200) -> JSONResponse:
    headers = {DEGRADED_HEADER: "1"} if result.degraded else None
    return JSONResponse(status_code=status_code, content=result.to_dict(), headers=headers)


def create_app(
    service: TaskService,
    executor: TaskExecutor,
    runtime: Runtime | None = None,
) -> FastAPI:
    """
    Build the API over ready-made collaborators.

    When a Runtime is given its lifecycle is tied to the app's startup and
    shutdown; tests pass a service and executor they manage themselves.
    """
    from ritual import __version__

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if runtime is None:
            yield
            return
        report = await runtime.start()
        if report is not None and report.degraded:
            logger.warning(f"Startup resync incomplete: {report.error}")
        try:
            yield
        finally:
            await runtime.stop()

    app = FastAPI(title="Ritual", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[DEGRADED_HEADER],
    )

    # ── Errors ────────────────────────────────────────────────────────────────

    @app.exception_handler(ScheduleError)
    async def _schedule_error(request: Request, exc: ScheduleError) -> JSONResponse:
        return json_error(400, error="invalid_schedule", message=exc.message)

    @app.exception_handler(NotFound)
    async def _not_found(request: Request, exc: NotFound) -> JSONResponse:
        return json_error(404, error="not_found", message=exc.message)

    @app.exception_handler(StorageError)
    async def _storage_error(request: Request, exc: StorageError) -> JSONResponse:
        logger.error(f"{request.method} {request.url.path} storage failure: {exc}")
        return json_error(500, error="storage_error", message=exc.message)

    @app.exception_handler(RequestValidationError)
    async def _bad_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}"
            for err in exc.errors()
        )
        return json_error(400, error="bad_request", message=details or "Invalid request body")

    @app.exception_handler(ValueError)
    async def _bad_value(request: Request, exc: ValueError) -> JSONResponse:
        return json_error(400, error="bad_request", message=str(exc))

    # ── Health ────────────────────────────────────────────────────────────────

    @app.get("/health")
    async def health() -> dict[str, Any]:
        available = not service.degraded
        return {"status": "ok" if available else "degraded", "backend": available}

    # ── Tasks ─────────────────────────────────────────────────────────────────

    @app.get("/api/tasks")
    async def list_tasks() -> list[dict[str, Any]]:
        return [t.to_dict() for t in await service.list_tasks()]

    @app.post("/api/tasks")
    async def create_task(body: TaskCreate) -> JSONResponse:
        result = await service.create_task(
            name=body.name,
            prompt=body.prompt,
            schedule=body.schedule,
            model=body.model,
            output=body.output,
            status=body.status,
        )
        return _result_response(result, status_code=201)

    @app.get("/api/tasks/{task_id}")
    async def get_task(task_id: str) -> dict[str, Any]:
        return (await service.get_task(task_id)).to_dict()

    @app.put("/api/tasks/{task_id}")
    async def update_task(task_id: str, body: TaskUpdate) -> JSONResponse:
        return _result_response(await service.update_task(task_id, **body.changes()))

    @app.delete("/api/tasks/{task_id}")
    async def delete_task(task_id: str) -> Response:
        result = await service.delete_task(task_id)
        headers = {DEGRADED_HEADER: "1"} if result.degraded else None
        return Response(status_code=204, headers=headers)

    @app.post("/api/tasks/{task_id}/pause")
    async def pause_task(task_id: str) -> JSONResponse:
        return _result_response(await service.pause_task(task_id))

    @app.post("/api/tasks/{task_id}/resume")
    async def resume_task(task_id: str) -> JSONResponse:
        return _result_response(await service.resume_task(task_id))

    @app.post("/api/tasks/{task_id}/run")
    async def run_task(task_id: str) -> dict[str, Any]:
        task = await service.get_task(task_id)
        entry = await executor.run(payload_for(task), force=True)
        return entry.to_dict()

    # ── Logs ──────────────────────────────────────────────────────────────────

    @app.get("/api/logs")
    async def list_logs(limit: int = 100) -> list[dict[str, Any]]:
        return [e.to_dict() for e in await service.store.list_execution_logs(limit=limit)]

    @app.get("/api/tasks/{task_id}/logs")
    async def list_task_logs(task_id: str, limit: int = 50) -> list[dict[str, Any]]:
        entries = await service.store.list_task_execution_logs(task_id, limit=limit)
        return [e.to_dict() for e in entries]

    # ── Scheduling ────────────────────────────────────────────────────────────

    @app.post("/api/schedule/parse")
    async def parse_schedule(body: ParseRequest) -> dict[str, Any]:
        parsed = parse(body.schedule)
        return {
            "recurrence": parsed.recurrence,
            "description": parsed.description,
            "nextRun": to_iso(next_occurrence(parsed.recurrence, utcnow())),
        }

    @app.post("/api/resync")
    async def resync() -> JSONResponse:
        report = await service.resync()
        headers = {DEGRADED_HEADER: "1"} if report.degraded else None
        return JSONResponse(content=report.to_dict(), headers=headers)

    return app
