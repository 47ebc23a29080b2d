import argparse
import datetime
import logging
import shutil
import sqlite3
import sys
from typing import Optional

from config import configure_logging, load_settings
from db import (
    DayTitleRepository,
    ExerciseRepository,
    HistoryRepository,
    MetricEntryRepository,
    MetricTypeRepository,
    RoutineRepository,
)
from migrate import MigrationError, migrate_if_needed

logger = logging.getLogger(__name__)


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def demo_data(db_path: str) -> None:
    """Populate the database with a demo week if it has no exercises."""
    exercises = ExerciseRepository(db_path)
    if exercises.fetch_all_exercises(limit=1):
        print("Database already contains exercises")
        return
    routines = RoutineRepository(db_path)
    history = HistoryRepository(db_path)
    days = DayTitleRepository(db_path)
    today = datetime.date.today()

    squat = exercises.add("Squat", "weight", "Legs-Push", 3, 8, 60.0)
    pullup = exercises.add("Assisted Pull Up", "assisted", "Arms-Pull", 3, 8, 30.0)
    run = exercises.add("Treadmill Run", "cardio")
    days.set("Monday", "Legs")
    days.set("Wednesday", "Back")
    routines.add(squat, "Monday")
    routines.add(run, "Monday", "20 minutes easy")
    routines.add(pullup, "Wednesday")
    for weeks_ago, squat_kg, assist_kg in ((2, 55.0, 35.0), (1, 60.0, 30.0)):
        day = (today - datetime.timedelta(weeks=weeks_ago)).isoformat()
        history.add(squat, day, [8, 8, 8], weight=squat_kg, completed=True)
        history.add(pullup, day, [8, 8, 6], weight=assist_kg)

    body_weight = MetricTypeRepository(db_path).fetch_all_types()[0]["id"]
    MetricEntryRepository(db_path).add(body_weight, today.isoformat(), 80.0)
    print("Demo data inserted")


def serve(config_path: Optional[str] = None) -> None:
    import uvicorn

    from rest_api import create_app

    settings = load_settings(config_path)
    try:
        app = create_app(settings)
    except (MigrationError, sqlite3.Error) as e:
        logger.error("Failed to start: %s", e)
        sys.exit(1)
    logger.info("Server starting on %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)


def main(argv: Optional[list] = None) -> None:
    parser = argparse.ArgumentParser(description="Training log commands")
    sub = parser.add_subparsers(dest="cmd", required=True)

    srv = sub.add_parser("serve")
    srv.add_argument("--config", default=None)

    mig = sub.add_parser("migrate")
    mig.add_argument("--json", default="train.json")
    mig.add_argument("--db", default="train.db")
    mig.add_argument("--backup", default=None)

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="train.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="train.db")

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="train.db")

    args = parser.parse_args(argv)

    if args.cmd == "serve":
        serve(args.config)
    elif args.cmd == "migrate":
        configure_logging()
        try:
            counts = migrate_if_needed(
                args.db, args.json, args.backup or args.json + ".backup"
            )
        except MigrationError as e:
            logger.error("%s", e)
            sys.exit(1)
        if counts is None:
            print("Nothing to migrate")
        else:
            print(
                f"Migrated {counts['exercises']} exercises, "
                f"{counts['history']} history entries, {counts['routines']} routines"
            )
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "demo":
        demo_data(args.db)


if __name__ == "__main__":
    main()
