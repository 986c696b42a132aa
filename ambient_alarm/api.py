"""
HTTP API over the alarm service
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .errors import (
    AmbientAlarmError, DeviceUnavailable, EmptyPlaylist, InvalidSchedule, NotFound, StoreError,
)
from .schemas import ConflictQuery, EnabledToggle, PlayRequest, TaskDraft, VolumeRequest
from .service import AlarmService

logger = logging.getLogger(__name__)

# Most specific first; the base class catches anything unlisted
ERROR_STATUS = (
    (NotFound, 404),
    (InvalidSchedule, 400),
    (EmptyPlaylist, 409),
    (DeviceUnavailable, 503),
    (StoreError, 500),
)


def status_for(error: AmbientAlarmError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 500


def create_app(service: Optional[AlarmService] = None, start_scheduler: bool = True) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        service: engine to serve; opened from the environment when omitted
        start_scheduler: run the poll loop for the lifetime of the app
    """
    service = service or AlarmService.from_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the scheduler on startup, stop it and any playback on shutdown"""
        if start_scheduler:
            service.start()
        logger.info("Ambient alarm API started")

        yield

        service.stop()
        logger.info("Ambient alarm API stopped")

    app = FastAPI(title="Ambient Alarm", lifespan=lifespan)
    app.state.service = service

    @app.exception_handler(AmbientAlarmError)
    async def engine_error_handler(request: Request, exc: AmbientAlarmError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        errors = exc.errors(include_url=False, include_context=False)
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "scheduler_running": service.scheduler.is_running(),
            "timestamp": datetime.now().isoformat(),
        }

    # Tasks

    @app.get("/api/tasks")
    def list_tasks():
        return {"tasks": [task.to_dict() for task in service.list_scheduled_tasks()]}

    @app.post("/api/tasks", status_code=201)
    def create_task(draft: TaskDraft):
        task_id = service.create_task(draft)
        return service.get_task(task_id).to_dict()

    @app.post("/api/tasks/conflicts")
    def check_conflicts(query: ConflictQuery):
        return {"conflicts": [conflict.to_dict() for conflict in service.check_conflicts(query)]}

    @app.put("/api/tasks/{task_id}")
    def update_task(task_id: int, draft: TaskDraft):
        service.update_task(task_id, draft)
        return service.get_task(task_id).to_dict()

    @app.delete("/api/tasks/{task_id}")
    def delete_task(task_id: int):
        service.delete_task(task_id)
        return {"status": "success"}

    @app.post("/api/tasks/{task_id}/enabled")
    def set_task_enabled(task_id: int, toggle: EnabledToggle):
        service.set_task_enabled(task_id, toggle.enabled)
        return {"status": "success", "enabled": toggle.enabled}

    @app.post("/api/tasks/{task_id}/run", status_code=202)
    def run_task(task_id: int):
        return service.run_task_now(task_id)

    @app.get("/api/history")
    def history(task_id: Optional[int] = None, limit: int = Query(default=50, ge=1, le=1000)):
        records = service.execution_history(task_id=task_id, limit=limit)
        return {"history": [record.to_dict() for record in records]}

    # Playlists

    @app.post("/api/playlists/{playlist_id}/play", status_code=202)
    def play_playlist(playlist_id: int, request: Optional[PlayRequest] = None):
        auto_advance = request.auto_advance if request else True
        return service.play_playlist_now(playlist_id, auto_advance=auto_advance)

    @app.get("/api/playlists/{playlist_id}/tasks")
    def playlist_tasks(playlist_id: int):
        return {"playlist_id": playlist_id, "tasks": service.tasks_for_playlist(playlist_id)}

    # Player

    @app.get("/api/player")
    def player_state():
        return service.player_state().to_dict()

    @app.post("/api/player/pause")
    def pause():
        service.pause()
        return service.player_state().to_dict()

    @app.post("/api/player/resume")
    def resume():
        service.resume()
        return service.player_state().to_dict()

    @app.post("/api/player/stop")
    def stop():
        service.stop_playback()
        return service.player_state().to_dict()

    @app.post("/api/player/next")
    def next_track():
        entry = service.next_track()
        if entry is None:
            return {"status": "info", "message": "Already at the last entry"}
        return service.player_state().to_dict()

    @app.post("/api/player/previous")
    def previous_track():
        entry = service.previous_track()
        if entry is None:
            return {"status": "info", "message": "Already at the first entry"}
        return service.player_state().to_dict()

    @app.post("/api/player/volume")
    def set_volume(request: VolumeRequest):
        service.set_volume(request.volume)
        return service.player_state().to_dict()

    return app
