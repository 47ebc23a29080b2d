"""One-shot migration of the legacy ``train.json`` file into SQLite."""

import json
import logging
import os
import re
import sqlite3
import sys
from typing import Optional

from db import BaseRepository

logger = logging.getLogger(__name__)

# Ordered: the first group with a matching keyword wins.
CATEGORY_PATTERNS = [
    ("Legs-Push", ["leg press", "squat", "lunge", "leg extension", "hack squat"]),
    ("Legs-Pull", ["leg curl", "deadlift", "romanian deadlift", "hamstring"]),
    (
        "Arms-Push",
        ["chest press", "bench press", "shoulder press", "tricep", "overhead press", "dip"],
    ),
    ("Arms-Pull", ["lat pulldown", "pull up", "chin up", "row", "bicep", "curl"]),
    ("Core-Push", ["ab machine", "crunch", "sit up", "ab wheel"]),
    ("Core-Pull", ["hanging knee raise", "leg raise", "plank", "back extension"]),
]


class MigrationError(Exception):
    """Raised when the legacy file cannot be migrated."""


def infer_category(name: str) -> str:
    """Guess the push/pull category of an exercise from its name."""
    cleaned = re.sub(r"[^a-zA-Z\s]", "", name)
    cleaned = re.sub(r"\s+", " ", cleaned)
    for category, patterns in CATEGORY_PATTERNS:
        for pattern in patterns:
            if re.search(rf"\b{pattern}\b", cleaned, re.IGNORECASE):
                return category
    return ""


def should_migrate(db_path: str = "train.db", json_path: str = "train.json") -> bool:
    if os.path.exists(db_path):
        return False
    return os.path.exists(json_path)


def _exercise_name(ex: dict) -> str:
    # Cardio entries only carry free text.
    return ex.get("name") or ex.get("text") or ""


def _positive(value) -> Optional[float]:
    if not value:
        return None
    return float(value)


def _migrate_data(conn: sqlite3.Connection, data: dict) -> dict:
    exercise_ids: dict[str, int] = {}
    for day_data in data.values():
        for ex in day_data.get("exercises") or []:
            name = _exercise_name(ex)
            if not name:
                raise MigrationError("exercise without name or text")
            if name in exercise_ids:
                continue
            category = infer_category(name)
            cursor = conn.execute(
                "INSERT INTO exercises (name, type, category) VALUES (?, ?, ?);",
                (name, ex.get("type"), category or None),
            )
            exercise_ids[name] = cursor.lastrowid
    logger.info("Migrated %d unique exercises", len(exercise_ids))

    merged: dict[int, list[dict]] = {}
    for day_data in data.values():
        for ex in day_data.get("exercises") or []:
            exercise_id = exercise_ids[_exercise_name(ex)]
            merged.setdefault(exercise_id, []).extend(ex.get("history") or [])

    history_count = 0
    for exercise_id, entries in merged.items():
        entries.sort(key=lambda entry: entry.get("date", ""))
        max_weight = 0.0
        pr_index = -1
        for i, entry in enumerate(entries):
            weight = entry.get("weight") or 0.0
            if weight > max_weight:
                max_weight = weight
                pr_index = i
        for i, entry in enumerate(entries):
            conn.execute(
                "INSERT INTO history (exercise_id, session_date, weight, sets_completed, completed, volume, is_pr) "
                "VALUES (?, ?, ?, ?, ?, ?, ?);",
                (
                    exercise_id,
                    entry.get("date", ""),
                    _positive(entry.get("weight")),
                    json.dumps(entry.get("sets") or []),
                    int(bool(entry.get("completed"))),
                    _positive(entry.get("volume")),
                    int(i == pr_index),
                ),
            )
            history_count += 1
    logger.info("Migrated %d history entries", history_count)

    routine_count = 0
    for day, day_data in data.items():
        conn.execute(
            "INSERT INTO day_titles (day_of_week, title) VALUES (?, ?) "
            "ON CONFLICT(day_of_week) DO UPDATE SET title = excluded.title;",
            (day, day_data.get("title") or ""),
        )
        for order_index, ex in enumerate(day_data.get("exercises") or []):
            exercise_id = exercise_ids[_exercise_name(ex)]
            notes = None
            if ex.get("type") in ("weight", "bodyweight"):
                target = ex.get("target") or {}
                target_weight = None
                if ex.get("type") == "weight":
                    target_weight = _positive(ex.get("currentWeight"))
                targets = {
                    "target_sets": target.get("sets"),
                    "target_reps": target.get("reps"),
                    "target_weight": target_weight,
                }
                targets = {k: v for k, v in targets.items() if v is not None}
                if targets:
                    # The first day listing the exercise provides its targets.
                    assignments = ", ".join(f"{col} = ?" for col in targets)
                    conn.execute(
                        f"UPDATE exercises SET {assignments} WHERE id = ? "
                        "AND target_sets IS NULL AND target_reps IS NULL AND target_weight IS NULL;",
                        tuple(targets.values()) + (exercise_id,),
                    )
            else:
                notes = ex.get("text")
            conn.execute(
                "INSERT INTO routines (exercise_id, day_of_week, order_index, notes) VALUES (?, ?, ?, ?);",
                (exercise_id, day, order_index, notes),
            )
            routine_count += 1
    logger.info("Migrated %d routines", routine_count)
    return {
        "exercises": len(exercise_ids),
        "history": history_count,
        "routines": routine_count,
    }


def migrate(
    db_path: str = "train.db",
    json_path: str = "train.json",
    backup_path: str = "train.json.backup",
) -> dict:
    """Populate a fresh database from the legacy JSON file.

    Returns the number of migrated exercises, history entries and routines.
    The source file is renamed to ``backup_path`` afterwards; a failed rename
    only logs a warning.
    """
    logger.info("Starting migration from %s to %s", json_path, db_path)
    try:
        with open(json_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise MigrationError(f"failed to read {json_path}: {e}") from e
    if not isinstance(data, dict):
        raise MigrationError(f"{json_path} must contain an object keyed by day")

    try:
        repo = BaseRepository(db_path)
        with repo.transaction() as conn:
            counts = _migrate_data(conn, data)
    except (sqlite3.Error, MigrationError, AttributeError, TypeError) as e:
        # Leave no half-built database behind so the next start retries.
        if os.path.exists(db_path):
            os.remove(db_path)
        if isinstance(e, MigrationError):
            raise
        raise MigrationError(f"migration failed: {e}") from e

    try:
        os.replace(json_path, backup_path)
        logger.info("Backed up %s to %s", json_path, backup_path)
    except OSError as e:
        logger.warning("Failed to back up %s: %s", json_path, e)
    logger.info("Migration completed: %s", counts)
    return counts


def migrate_if_needed(
    db_path: str = "train.db",
    json_path: str = "train.json",
    backup_path: str = "train.json.backup",
) -> Optional[dict]:
    if not should_migrate(db_path, json_path):
        return None
    logger.info("Database not found. Migrating from %s", json_path)
    return migrate(db_path, json_path, backup_path)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    json_file = sys.argv[1] if len(sys.argv) > 1 else "train.json"
    db_file = sys.argv[2] if len(sys.argv) > 2 else "train.db"
    migrate_if_needed(db_file, json_file, json_file + ".backup")
