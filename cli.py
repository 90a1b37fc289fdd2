import argparse
import asyncio
import datetime
import json
import os
import shutil

from algorithms.weight_converter import UnitConverter
from db import COLLECTION_KEYS, AsyncKeyValueRepository, KeyValueRepository, storage_key
from fitness_store import FitnessStore
from models import WorkoutExercise, WorkoutSet
from sync_service import LocalNamespaceSink, SyncDispatcher
from workout_service import WorkoutService


def open_store(db_path: str) -> FitnessStore:
    storage = AsyncKeyValueRepository(db_path)
    return FitnessStore(storage, SyncDispatcher(LocalNamespaceSink(storage)))


def export_collections(db_path: str, user_id: str | None, output_dir: str = ".") -> list[str]:
    """Write each stored collection snapshot to ``<collection>.json``."""
    repo = KeyValueRepository(db_path)
    written: list[str] = []
    for key in COLLECTION_KEYS:
        raw = repo.get_item(storage_key(key, user_id))
        if raw is None:
            continue
        out_path = os.path.join(output_dir, f"{key}.json")
        with open(out_path, "w", encoding="utf-8") as f:
            json.dump(json.loads(raw), f, indent=2)
        written.append(out_path)
    return written


def backup_db(db_path: str, backup_path: str) -> None:
    KeyValueRepository(db_path).vacuum()
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def demo_data(db_path: str, user_id: str) -> None:
    """Populate the store with a demo client, workout and records if empty."""
    store = open_store(db_path)
    asyncio.run(store.set_current_user(user_id))
    if store.workouts:
        print("Store already contains workouts")
        return
    client = store.add_client({"name": "Demo Client", "email": "demo@example.com"})
    store.add_body_weight(
        client.id, {"weight": 80.5, "date": datetime.date.today().isoformat()}
    )
    bench = store.exercises[0]
    sets = [
        WorkoutSet(id="set-1", reps=5, weight=100.0, rest_time=90),
        WorkoutSet(id="set-2", reps=5, weight=105.0, rest_time=90),
    ]
    service = WorkoutService(store)
    workout = service.save_workout(
        client.id,
        "Demo session",
        datetime.date.today().isoformat(),
        [WorkoutExercise(id="ex-1", exercise_id=bench.id, exercise=bench, sets=sets)],
    )
    for s in sets:
        service.complete_set(workout.id, bench.id, {client.id: s})
    print("Demo data inserted")


def logout(db_path: str, user_id: str | None) -> None:
    asyncio.run(open_store(db_path).clear_local_data(user_id))


def convert(args: argparse.Namespace) -> str:
    if args.weight is not None:
        if args.unit == "kg":
            return f"{args.weight} kg = {UnitConverter.kg_to_lb(args.weight)} lb"
        if args.unit == "lb":
            return f"{args.weight} lb = {UnitConverter.lb_to_kg(args.weight)} kg"
    if args.distance is not None:
        if args.unit == "km":
            return f"{args.distance} km = {UnitConverter.km_to_mi(args.distance)} mi"
        if args.unit == "mi":
            return f"{args.distance} mi = {UnitConverter.mi_to_km(args.distance)} km"
    raise ValueError("use --weight with kg/lb or --distance with km/mi")


def main() -> None:
    parser = argparse.ArgumentParser(description="Utility commands")
    sub = parser.add_subparsers(dest="cmd", required=True)

    exp = sub.add_parser("export")
    exp.add_argument("--db", default="coachlog.db")
    exp.add_argument("--user", default=None)
    exp.add_argument("--out", default=".")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="coachlog.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="coachlog.db")

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="coachlog.db")
    demo.add_argument("--user", default="demo")

    out = sub.add_parser("logout")
    out.add_argument("--db", default="coachlog.db")
    out.add_argument("--user", default=None)

    conv = sub.add_parser("convert")
    conv.add_argument("--weight", type=float)
    conv.add_argument("--distance", type=float)
    conv.add_argument("--unit", choices=["kg", "lb", "km", "mi"], required=True)

    args = parser.parse_args()

    if args.cmd == "export":
        for path in export_collections(args.db, args.user, args.out):
            print(path)
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "demo":
        demo_data(args.db, args.user)
    elif args.cmd == "logout":
        logout(args.db, args.user)
    elif args.cmd == "convert":
        try:
            print(convert(args))
        except ValueError as e:
            parser.error(str(e))


if __name__ == "__main__":
    main()
