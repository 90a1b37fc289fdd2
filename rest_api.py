import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Body, FastAPI, HTTPException

from algorithms.math_tools import MathTools
from algorithms.session_decomposer import MultiClientSession
from algorithms.weight_converter import UnitConverter
from config import StoreConfig
from db import AsyncKeyValueRepository
from fitness_store import FitnessStore
from models import MeasurementSettings, MeasurementUnit, WorkoutExercise, WorkoutSet
from stats_service import StatisticsService
from sync_service import SyncDispatcher, SyncSink, build_sink
from workout_service import WorkoutService

logger = logging.getLogger("coachlog.api")


class FitnessAPI:
    """Provides REST endpoints over the personal-training data layer."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        yaml_path: str = "settings.yaml",
        *,
        sink: Optional[SyncSink] = None,
    ) -> None:
        self.config = StoreConfig(yaml_path)
        self.db_path = db_path or self.config.db_path
        self.storage = AsyncKeyValueRepository(self.db_path)
        self.dispatcher = SyncDispatcher(sink or build_sink(self.config, self.storage))
        self.store = FitnessStore(self.storage, self.dispatcher)
        self.workouts = WorkoutService(self.store)
        self.statistics = StatisticsService(self.store)
        self.app = FastAPI(
            title="Coachlog API",
            description="REST API for client, workout and personal record data",
        )
        self._setup_routes()

    @staticmethod
    def _found(ok: bool, what: str) -> dict:
        if not ok:
            raise HTTPException(status_code=404, detail=f"{what} not found")
        return {"status": "updated"}

    @staticmethod
    def _with_volume(data: dict) -> dict:
        """Derive ``total_volume`` from the sets whenever exercises are given."""
        if "exercises" not in data:
            return data
        exercises = [WorkoutExercise.model_validate(e) for e in data["exercises"] or []]
        return {**data, "total_volume": MathTools.workout_volume(exercises)}

    def _setup_routes(self) -> None:
        store = self.store
        clients_router = APIRouter(prefix="/clients", tags=["Clients"])
        exercises_router = APIRouter(prefix="/exercises", tags=["Exercises"])
        workouts_router = APIRouter(prefix="/workouts", tags=["Workouts"])
        templates_router = APIRouter(prefix="/templates", tags=["Templates"])
        records_router = APIRouter(prefix="/personal_records", tags=["Records"])
        videos_router = APIRouter(prefix="/video_records", tags=["Videos"])

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and storage connectivity.",
        )
        def health():
            """Return API and storage connection status."""
            try:
                asyncio.run(self.storage.keys())
                return {"status": "ok", "user": store.current_user_id}
            except Exception as e:  # pragma: no cover - connectivity failure
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.post("/session")
        def start_session(user_id: Optional[str] = None):
            asyncio.run(store.set_current_user(user_id))
            return {"user": store.current_user_id, "loading": store.is_loading}

        @self.app.delete("/session")
        def end_session():
            user_id = store.current_user_id
            asyncio.run(store.set_current_user(None))
            asyncio.run(store.clear_local_data(user_id))
            logger.info("User %s signed out", user_id)
            return {"status": "signed out"}

        @self.app.post("/sync")
        def sync_all():
            if not store.current_user_id:
                raise HTTPException(status_code=400, detail="no active user")
            results = asyncio.run(store.sync_all())
            return {"synced": sum(results), "failed": len(results) - sum(results)}

        # ------------------------------------------------------------ clients

        @clients_router.get("")
        def list_clients():
            return store.clients

        @clients_router.post("")
        def add_client(data: dict = Body(...)):
            try:
                return store.add_client(data)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @clients_router.get("/{client_id}")
        def get_client(client_id: str):
            client = store.find_client(client_id)
            if client is None:
                raise HTTPException(status_code=404, detail="client not found")
            return client

        @clients_router.put("/{client_id}")
        def update_client(client_id: str, updates: dict = Body(...)):
            try:
                return self._found(store.update_client(client_id, updates), "client")
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @clients_router.delete("/{client_id}")
        def delete_client(client_id: str):
            self._found(store.delete_client(client_id), "client")
            return {"status": "deleted"}

        @clients_router.get("/{client_id}/overview")
        def client_overview(client_id: str):
            return self.statistics.client_overview(client_id)

        @clients_router.post("/{client_id}/photos")
        def add_photo(client_id: str, data: dict = Body(...)):
            try:
                photo = store.add_client_photo(client_id, data)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            if photo is None:
                raise HTTPException(status_code=404, detail="client not found")
            return photo

        @clients_router.delete("/{client_id}/photos/{photo_id}")
        def delete_photo(client_id: str, photo_id: str):
            self._found(store.delete_client_photo(client_id, photo_id), "photo")
            return {"status": "deleted"}

        @clients_router.post("/{client_id}/body_weights")
        def add_body_weight(client_id: str, data: dict = Body(...)):
            try:
                entry = store.add_body_weight(client_id, data)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            if entry is None:
                raise HTTPException(status_code=404, detail="client not found")
            return entry

        @clients_router.put("/{client_id}/body_weights/{weight_id}")
        def update_body_weight(client_id: str, weight_id: str, updates: dict = Body(...)):
            try:
                ok = store.update_body_weight(client_id, weight_id, updates)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return self._found(ok, "body weight")

        @clients_router.delete("/{client_id}/body_weights/{weight_id}")
        def delete_body_weight(client_id: str, weight_id: str):
            self._found(store.delete_body_weight(client_id, weight_id), "body weight")
            return {"status": "deleted"}

        @clients_router.get("/{client_id}/personal_records")
        def client_records(client_id: str):
            return store.get_client_personal_records(client_id)

        @clients_router.get("/{client_id}/video_records")
        def client_videos(client_id: str, exercise_id: Optional[str] = None):
            return store.get_client_video_records(client_id, exercise_id)

        # ---------------------------------------------------------- exercises

        @exercises_router.get("")
        def list_exercises(category: Optional[str] = None):
            if category:
                return [e for e in store.exercises if e.category == category]
            return store.exercises

        @exercises_router.post("")
        def add_exercise(data: dict = Body(...)):
            try:
                return store.add_exercise({"is_custom": True, **data})
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @exercises_router.put("/{exercise_id}")
        def update_exercise(exercise_id: str, updates: dict = Body(...)):
            try:
                return self._found(store.update_exercise(exercise_id, updates), "exercise")
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @exercises_router.delete("/{exercise_id}")
        def delete_exercise(exercise_id: str):
            self._found(store.delete_exercise(exercise_id), "exercise")
            return {"status": "deleted"}

        # ----------------------------------------------------------- workouts

        @workouts_router.get("")
        def list_workouts(client_id: Optional[str] = None):
            if client_id:
                return store.get_client_workouts(client_id)
            return store.workouts

        @workouts_router.post("")
        def add_workout(data: dict = Body(...)):
            try:
                return store.add_workout(self._with_volume({"exercises": [], **data}))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @workouts_router.post("/multi")
        def save_multi_client_session(data: dict = Body(...)):
            try:
                session = MultiClientSession.model_validate(data)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            result = self.workouts.save_multi_client_session(session)
            return {
                "all_saved": result.all_saved,
                "workout_ids": result.workout_ids,
                "outcomes": [o.model_dump() for o in result.outcomes],
            }

        @workouts_router.get("/{workout_id}")
        def get_workout(workout_id: str):
            workout = store.find_workout(workout_id)
            if workout is None:
                raise HTTPException(status_code=404, detail="workout not found")
            lookup = store.client_name(workout.client_id)
            return {
                **workout.model_dump(mode="json"),
                "client_name": lookup.name,
                "client_found": lookup.found,
            }

        @workouts_router.put("/{workout_id}")
        def update_workout(workout_id: str, updates: dict = Body(...)):
            try:
                return self._found(
                    store.update_workout(workout_id, self._with_volume(updates)), "workout"
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @workouts_router.delete("/{workout_id}")
        def delete_workout(workout_id: str):
            self._found(store.delete_workout(workout_id), "workout")
            return {"status": "deleted"}

        @workouts_router.post("/{workout_id}/exercises/{exercise_id}/complete")
        def complete_set(workout_id: str, exercise_id: str, data: dict = Body(...)):
            """Body maps client id to the completed set (reps, weight, video_uri)."""
            try:
                sets = {cid: WorkoutSet.model_validate(s) for cid, s in data.items()}
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"new_records": self.workouts.complete_set(workout_id, exercise_id, sets)}

        # ---------------------------------------------------------- templates

        @templates_router.get("")
        def list_templates():
            return store.workout_templates

        @templates_router.post("")
        def add_template(data: dict = Body(...)):
            try:
                return store.add_workout_template(data)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @templates_router.put("/{template_id}")
        def update_template(template_id: str, updates: dict = Body(...)):
            try:
                return self._found(
                    store.update_workout_template(template_id, updates), "template"
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @templates_router.delete("/{template_id}")
        def delete_template(template_id: str):
            self._found(store.delete_workout_template(template_id), "template")
            return {"status": "deleted"}

        # ------------------------------------------------------------ records

        @records_router.post("/check")
        def check_record(
            client_id: str,
            exercise_id: str,
            weight: float,
            reps: int,
            workout_id: str,
            video_uri: Optional[str] = None,
        ):
            new_record = store.check_and_add_personal_record(
                client_id, exercise_id, weight, weight * reps, workout_id, video_uri
            )
            return {"new_record": new_record}

        @records_router.delete("/{record_id}")
        def delete_record(record_id: str):
            self._found(store.delete_personal_record(record_id), "personal record")
            return {"status": "deleted"}

        @videos_router.post("")
        def add_video(data: dict = Body(...)):
            try:
                return store.add_video_record(data)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @videos_router.delete("/{record_id}")
        def delete_video(record_id: str):
            self._found(store.delete_video_record(record_id), "video record")
            return {"status": "deleted"}

        # --------------------------------------------------- units & settings

        @self.app.get("/settings/measurement")
        def get_measurement_settings():
            return store.measurement_settings

        @self.app.put("/settings/measurement")
        def update_measurement_settings(updates: dict = Body(...)):
            try:
                return store.update_measurement_settings(updates)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.get("/convert/weight")
        def convert_weight(
            value: float, source: MeasurementUnit = "metric", target: MeasurementUnit = "imperial"
        ):
            converted = UnitConverter.convert_weight(value, source, target)
            settings = MeasurementSettings(weight_unit=target)
            return {
                "value": converted,
                "display": UnitConverter.format_weight(converted, settings),
            }

        @self.app.get("/convert/distance")
        def convert_distance(
            value: float, source: MeasurementUnit = "metric", target: MeasurementUnit = "imperial"
        ):
            converted = UnitConverter.convert_distance(value, source, target)
            settings = MeasurementSettings(distance_unit=target)
            return {
                "value": converted,
                "display": UnitConverter.format_distance(converted, settings),
            }

        for router in (
            clients_router,
            exercises_router,
            workouts_router,
            templates_router,
            records_router,
            videos_router,
        ):
            self.app.include_router(router)


api = FitnessAPI()
app = api.app

if __name__ == "__main__":
    import uvicorn

    api.config.configure_logging()
    uvicorn.run(app)
