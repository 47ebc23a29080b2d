import json
import logging
import os
import sqlite3
import threading

from fastapi import APIRouter, Body, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import APP_VERSION, SettingsSchema, configure_logging, load_settings
from db import (
    DAYS_OF_WEEK,
    ConflictError,
    DayTitleRepository,
    ExerciseRepository,
    HistoryRepository,
    MetricEntryRepository,
    MetricTypeRepository,
    NotFoundError,
    RoutineRepository,
    validate_day,
)
from migrate import migrate_if_needed
from schemas import (
    DayTitleUpdate,
    ExerciseCreate,
    ExercisePatch,
    HistoryCreate,
    HistoryPatch,
    MetricEntryCreate,
    MetricEntryPatch,
    MetricTypeCreate,
    MetricTypePatch,
    MetricTypeReorder,
    RoutineCreate,
    RoutinePatch,
    RoutineReorder,
)

logger = logging.getLogger(__name__)


def _http_error(e: ValueError) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ConflictError):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


class TrainAPI:
    """Provides REST endpoints for exercises, routines, history and body metrics."""

    def __init__(
        self,
        db_path: str = "train.db",
        static_dir: str | None = "public",
        legacy_json_path: str = "train.json",
    ) -> None:
        self.db_path = db_path
        self.static_dir = static_dir
        self.legacy_json_path = legacy_json_path
        self.training_lock = threading.Lock()
        self.exercises = ExerciseRepository(db_path)
        self.routines = RoutineRepository(db_path)
        self.history = HistoryRepository(db_path)
        self.days = DayTitleRepository(db_path)
        self.metric_types = MetricTypeRepository(db_path)
        self.metric_entries = MetricEntryRepository(db_path)
        self.app = FastAPI(
            title="Train API",
            description="REST API for exercises, weekly routines, workout history and body metrics",
            version=APP_VERSION,
        )
        self._setup_error_handlers()
        self._setup_routes()

    def _setup_error_handlers(self) -> None:
        @self.app.exception_handler(StarletteHTTPException)
        async def http_error(request: Request, exc: StarletteHTTPException):
            return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

        @self.app.exception_handler(RequestValidationError)
        async def validation_error(request: Request, exc: RequestValidationError):
            if any(err.get("loc", ("",))[0] == "path" for err in exc.errors()):
                return PlainTextResponse("Invalid ID", status_code=400)
            return PlainTextResponse("Invalid request body", status_code=400)

        @self.app.exception_handler(sqlite3.Error)
        async def database_error(request: Request, exc: sqlite3.Error):
            logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
            return PlainTextResponse(f"Database error: {exc}", status_code=500)

    def _day_view(self, day: str) -> dict:
        return {
            "day": day,
            "title": self.days.fetch(day) or "",
            "exercises": self.routines.fetch_for_day(day),
        }

    def _setup_routes(self) -> None:
        exercises_router = APIRouter(prefix="/api/exercises", tags=["Exercises"])
        routines_router = APIRouter(prefix="/api/routines", tags=["Routines"])
        history_router = APIRouter(prefix="/api/history", tags=["History"])
        days_router = APIRouter(prefix="/api/days", tags=["Days"])
        metrics_router = APIRouter(prefix="/api/metrics", tags=["Metrics"])
        entries_router = APIRouter(prefix="/api/metric-entries", tags=["Metric Entries"])

        @self.app.get("/health")
        def health():
            """Return API and database connection status."""
            self.days.fetch_all_titles()
            return {"status": "ok", "version": APP_VERSION}

        @exercises_router.get("")
        def list_exercises(search: str = None, type: str = None, category: str = None):
            return {
                "exercises": self.exercises.fetch_all_exercises(search, type, category)
            }

        @exercises_router.get("/{exercise_id}")
        def get_exercise(exercise_id: int):
            try:
                return self.exercises.fetch_detail(exercise_id)
            except ValueError as e:
                raise _http_error(e)

        @exercises_router.post("", status_code=201)
        def create_exercise(body: ExerciseCreate):
            try:
                eid = self.exercises.add(
                    body.name,
                    body.type,
                    body.category,
                    body.target_sets,
                    body.target_reps,
                    body.target_weight,
                )
            except ValueError as e:
                raise _http_error(e)
            return {"id": eid, "message": "Exercise created successfully"}

        @exercises_router.put("/{exercise_id}")
        def update_exercise(exercise_id: int, body: ExercisePatch):
            try:
                self.exercises.update(exercise_id, **body.changes())
            except ValueError as e:
                raise _http_error(e)
            return {"message": "Exercise updated successfully"}

        @exercises_router.delete("/{exercise_id}")
        def delete_exercise(exercise_id: int):
            try:
                self.exercises.delete(exercise_id)
            except ValueError as e:
                raise _http_error(e)
            return {"message": "Exercise deleted successfully"}

        @routines_router.get("")
        def list_week():
            return {"days": [self._day_view(day) for day in DAYS_OF_WEEK]}

        @routines_router.post("/reorder")
        def reorder_routines(body: RoutineReorder):
            if not body.day_of_week or not body.routine_ids:
                raise HTTPException(
                    status_code=400, detail="day_of_week and routine_ids are required"
                )
            try:
                self.routines.reorder(body.day_of_week, body.routine_ids)
            except ValueError as e:
                raise _http_error(e)
            return {"message": "Routines reordered successfully"}

        @routines_router.get("/{day}")
        def get_routines_for_day(day: str):
            try:
                return self._day_view(validate_day(day))
            except ValueError as e:
                raise _http_error(e)

        @routines_router.post("", status_code=201)
        def create_routine(body: RoutineCreate):
            if not body.exercise_id or not body.day_of_week:
                raise HTTPException(
                    status_code=400, detail="exercise_id and day_of_week are required"
                )
            try:
                rid = self.routines.add(body.exercise_id, body.day_of_week, body.notes)
            except ValueError as e:
                raise _http_error(e)
            return {"id": rid, "message": "Routine created successfully"}

        @routines_router.put("/{routine_id}")
        def update_routine(routine_id: int, body: RoutinePatch):
            try:
                self.routines.update(routine_id, **body.changes())
            except ValueError as e:
                raise _http_error(e)
            return {"message": "Routine updated successfully"}

        @routines_router.delete("/{routine_id}")
        def delete_routine(routine_id: int):
            try:
                self.routines.delete(routine_id)
            except ValueError as e:
                raise _http_error(e)
            return {"message": "Routine deleted successfully"}

        @history_router.get("/{exercise_id}")
        def get_history(exercise_id: int):
            try:
                exercise = self.exercises.fetch_detail(exercise_id)
            except ValueError as e:
                raise _http_error(e)
            return {
                "exercise_id": exercise_id,
                "exercise_name": exercise["name"],
                "history": self.history.fetch_for_exercise(exercise_id),
            }

        @history_router.get("/{exercise_id}/pr")
        def get_pr(exercise_id: int):
            return {"pr": self.history.fetch_pr(exercise_id)}

        @history_router.post("", status_code=201)
        def create_history(body: HistoryCreate):
            try:
                hid, is_pr = self.history.add(
                    body.exercise_id,
                    body.session_date,
                    body.sets_completed,
                    weight=body.weight,
                    completed=body.completed,
                    volume=body.volume,
                    notes=body.notes,
                )
            except ValueError as e:
                raise _http_error(e)
            return {
                "id": hid,
                "is_pr": is_pr,
                "message": "History entry created successfully",
            }

        @history_router.put("/{history_id}")
        def update_history(history_id: int, body: HistoryPatch):
            try:
                self.history.update(history_id, **body.changes())
            except ValueError as e:
                raise _http_error(e)
            return {"message": "History entry updated successfully"}

        @history_router.delete("/{history_id}")
        def delete_history(history_id: int):
            try:
                self.history.delete(history_id)
            except ValueError as e:
                raise _http_error(e)
            return {"message": "History entry deleted successfully"}

        @days_router.get("")
        def list_day_titles():
            titles = self.days.fetch_all_titles()
            return {
                "days": [
                    {"day_of_week": day, "title": title} for day, title in titles.items()
                ]
            }

        @days_router.get("/{day}")
        def get_day_title(day: str):
            try:
                title = self.days.fetch(day)
            except ValueError as e:
                raise _http_error(e)
            if title is None:
                raise HTTPException(status_code=404, detail="Day title not found")
            return {"day_of_week": day, "title": title}

        @days_router.put("/{day}")
        def update_day_title(day: str, body: DayTitleUpdate):
            try:
                self.days.set(day, body.title)
            except ValueError as e:
                raise _http_error(e)
            return {"message": "Day title updated successfully"}

        @metrics_router.get("")
        def list_metric_types():
            result = []
            for mt in self.metric_types.fetch_all_types():
                data = {
                    k: mt[k]
                    for k in ("id", "name", "unit", "color", "order_index", "is_default")
                }
                latest = self.metric_entries.latest(mt["id"])
                if latest is not None:
                    data["latest_entry"] = {
                        "date": latest["entry_date"],
                        "value": latest["value"],
                    }
                result.append(data)
            return {"metric_types": result}

        @metrics_router.post("", status_code=201)
        def create_metric_type(body: MetricTypeCreate):
            try:
                mid = self.metric_types.add(
                    body.name, body.unit, body.color, body.order_index
                )
            except ValueError as e:
                raise _http_error(e)
            return {"id": mid, "message": "Metric type created successfully"}

        @metrics_router.get("/dashboard")
        def get_dashboard(days: int = 30):
            entries = self.metric_entries.dashboard(days)
            return {
                "metrics": [
                    {
                        "id": mt["id"],
                        "name": mt["name"],
                        "unit": mt["unit"],
                        "color": mt["color"],
                        "entries": [
                            {"date": e["entry_date"], "value": e["value"]}
                            for e in entries.get(mt["id"], [])
                        ],
                    }
                    for mt in self.metric_types.fetch_all_types()
                ]
            }

        @metrics_router.post("/reorder")
        def reorder_metric_types(body: MetricTypeReorder):
            try:
                self.metric_types.reorder(
                    (mt.id, mt.order_index) for mt in body.metric_types
                )
            except ValueError as e:
                raise _http_error(e)
            return {"message": "Metric types reordered successfully"}

        @metrics_router.put("/{metric_type_id}")
        def update_metric_type(metric_type_id: int, body: MetricTypePatch):
            try:
                self.metric_types.update(metric_type_id, **body.changes())
            except ValueError as e:
                raise _http_error(e)
            return {"message": "Metric type updated successfully"}

        @metrics_router.delete("/{metric_type_id}")
        def delete_metric_type(metric_type_id: int):
            try:
                self.metric_types.delete(metric_type_id)
            except ValueError as e:
                raise _http_error(e)
            return {"message": "Metric type deleted successfully"}

        @metrics_router.get("/{metric_type_id}/entries")
        def list_metric_entries(metric_type_id: int, limit: int = 30):
            try:
                self.metric_types.fetch_detail(metric_type_id)
            except ValueError as e:
                raise _http_error(e)
            return {"entries": self.metric_entries.fetch_for_type(metric_type_id, limit)}

        @entries_router.post("", status_code=201)
        def create_metric_entry(body: MetricEntryCreate):
            try:
                eid = self.metric_entries.add(
                    body.metric_type_id, body.entry_date, body.value, body.notes
                )
            except ValueError as e:
                raise _http_error(e)
            return {"id": eid, "message": "Metric entry created successfully"}

        @entries_router.get("/{entry_id}")
        def get_metric_entry(entry_id: int):
            try:
                return self.metric_entries.fetch_detail(entry_id)
            except ValueError as e:
                raise _http_error(e)

        @entries_router.put("/{entry_id}")
        def update_metric_entry(entry_id: int, body: MetricEntryPatch):
            try:
                self.metric_entries.update(entry_id, **body.changes())
            except ValueError as e:
                raise _http_error(e)
            return {"message": "Metric entry updated successfully"}

        @entries_router.delete("/{entry_id}")
        def delete_metric_entry(entry_id: int):
            try:
                self.metric_entries.delete(entry_id)
            except ValueError as e:
                raise _http_error(e)
            return {"message": "Metric entry deleted successfully"}

        @self.app.get("/api/training")
        def get_training():
            with self.training_lock:
                if not os.path.exists(self.legacy_json_path):
                    raise HTTPException(status_code=404, detail="Training data not found")
                with open(self.legacy_json_path, "r", encoding="utf-8") as f:
                    content = f.read()
            return JSONResponse(content=json.loads(content))

        @self.app.post("/api/training")
        def save_training(data: dict = Body(...)):
            with self.training_lock:
                with open(self.legacy_json_path, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
            return PlainTextResponse("Training data updated successfully")

        self.app.include_router(exercises_router)
        self.app.include_router(routines_router)
        self.app.include_router(history_router)
        self.app.include_router(days_router)
        self.app.include_router(metrics_router)
        self.app.include_router(entries_router)

        if self.static_dir and os.path.isdir(self.static_dir):
            self.app.mount(
                "/", StaticFiles(directory=self.static_dir, html=True), name="static"
            )
        elif self.static_dir:
            logger.warning("Static directory %s not found; serving API only", self.static_dir)


def create_app(settings: SettingsSchema | None = None) -> FastAPI:
    """Build the application from settings, migrating legacy data first."""
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    migrate_if_needed(
        settings.db_path, settings.legacy_json_path, settings.legacy_backup_path
    )
    api = TrainAPI(
        db_path=settings.db_path,
        static_dir=settings.static_dir,
        legacy_json_path=settings.legacy_json_path,
    )
    logger.info("Database ready at %s", settings.db_path)
    return api.app


if __name__ == "__main__":
    import uvicorn

    settings = load_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
