import json
import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

DAYS_OF_WEEK = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)
EXERCISE_TYPES = ("weight", "bodyweight", "cardio", "assisted")
CATEGORIES = (
    "Legs-Push",
    "Legs-Pull",
    "Arms-Push",
    "Arms-Pull",
    "Core-Push",
    "Core-Pull",
)
# Exercise types where a lower weight is the better result.
DESCENDING_TYPES = ("assisted",)


class NotFoundError(ValueError):
    """Raised when the identified row does not exist."""


class ConflictError(ValueError):
    """Raised when a write violates a uniqueness constraint."""


def validate_day(day: str) -> str:
    if day not in DAYS_OF_WEEK:
        raise ValueError("Invalid day of week")
    return day


def is_new_pr(exercise_type: str, weight: Optional[float], extreme: Optional[float]) -> bool:
    """Return True if ``weight`` beats the running extreme for the exercise type."""
    if weight is None or weight <= 0:
        return False
    if extreme is None:
        return True
    if exercise_type in DESCENDING_TYPES:
        return weight < extreme
    return weight > extreme


@contextmanager
def _unique_conflict(message: str):
    try:
        yield
    except sqlite3.IntegrityError as e:
        if "UNIQUE constraint failed" in str(e):
            raise ConflictError(message) from e
        raise


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "exercises": (
            """CREATE TABLE exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    type TEXT NOT NULL CHECK(type IN ('weight', 'bodyweight', 'cardio', 'assisted')),
                    category TEXT,
                    target_sets INTEGER,
                    target_reps INTEGER,
                    target_weight REAL,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                );""",
            [
                "id",
                "name",
                "type",
                "category",
                "target_sets",
                "target_reps",
                "target_weight",
                "created_at",
                "updated_at",
            ],
        ),
        "routines": (
            """CREATE TABLE routines (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    exercise_id INTEGER NOT NULL,
                    day_of_week TEXT NOT NULL CHECK(day_of_week IN ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')),
                    order_index INTEGER NOT NULL,
                    notes TEXT,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE CASCADE
                );""",
            ["id", "exercise_id", "day_of_week", "order_index", "notes", "created_at"],
        ),
        "exercise_progression": (
            """CREATE TABLE exercise_progression (
                    exercise_id INTEGER PRIMARY KEY,
                    current_weight REAL,
                    consecutive_successes INTEGER NOT NULL DEFAULT 0,
                    ready_to_progress INTEGER NOT NULL DEFAULT 0,
                    last_done TEXT,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE CASCADE
                );""",
            [
                "exercise_id",
                "current_weight",
                "consecutive_successes",
                "ready_to_progress",
                "last_done",
            ],
        ),
        "history": (
            """CREATE TABLE history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    exercise_id INTEGER NOT NULL,
                    session_date TEXT NOT NULL,
                    weight REAL,
                    sets_completed TEXT NOT NULL,
                    completed INTEGER NOT NULL DEFAULT 0,
                    volume REAL,
                    is_pr INTEGER NOT NULL DEFAULT 0,
                    notes TEXT,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "exercise_id",
                "session_date",
                "weight",
                "sets_completed",
                "completed",
                "volume",
                "is_pr",
                "notes",
                "created_at",
            ],
        ),
        "day_titles": (
            """CREATE TABLE day_titles (
                    day_of_week TEXT PRIMARY KEY CHECK(day_of_week IN ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')),
                    title TEXT NOT NULL DEFAULT ''
                );""",
            ["day_of_week", "title"],
        ),
        "metric_types": (
            """CREATE TABLE metric_types (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    unit TEXT NOT NULL,
                    color TEXT NOT NULL,
                    order_index INTEGER NOT NULL DEFAULT 0,
                    is_default INTEGER NOT NULL DEFAULT 0,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                );""",
            [
                "id",
                "name",
                "unit",
                "color",
                "order_index",
                "is_default",
                "created_at",
                "updated_at",
            ],
        ),
        "metric_entries": (
            """CREATE TABLE metric_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    metric_type_id INTEGER NOT NULL,
                    entry_date TEXT NOT NULL,
                    value REAL NOT NULL,
                    notes TEXT,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY(metric_type_id) REFERENCES metric_types(id) ON DELETE CASCADE
                );""",
            ["id", "metric_type_id", "entry_date", "value", "notes", "created_at"],
        ),
    }

    _INDEXES = [
        "CREATE INDEX IF NOT EXISTS idx_routines_exercise ON routines(exercise_id);",
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_routines_day_order ON routines(day_of_week, order_index);",
        "CREATE INDEX IF NOT EXISTS idx_history_exercise_date ON history(exercise_id, session_date);",
        "CREATE INDEX IF NOT EXISTS idx_metric_entries_type_date ON metric_entries(metric_type_id, entry_date);",
    ]

    _DEFAULT_METRIC_TYPES = [
        ("Body Weight", "kg", "#4CAF50", 0),
        ("Body Fat", "%", "#FF9800", 1),
        ("Waist", "cm", "#2196F3", 2),
    ]

    def __init__(self, db_path: str = "train.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @property
    def db_path(self) -> str:
        return self._db_path

    @contextmanager
    def _connection(self, immediate: bool = False):
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys = ON;")
        if immediate:
            # Take the write lock before the first read.
            connection.execute("BEGIN IMMEDIATE;")
        try:
            yield connection
            connection.commit()
        except Exception:
            connection.rollback()
            raise
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute("PRAGMA foreign_keys = OFF;")
            self._migrate_routine_targets(conn)
            created = set()
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                if self._ensure_table(conn, table, sql, columns):
                    created.add(table)
            for index in self._INDEXES:
                conn.execute(index)
            if "metric_types" in created:
                self._init_metric_types(conn)

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> bool:
        """Create ``table`` or rebuild it when its columns changed.

        Returns True when the table did not exist before.
        """
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return True

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return False

        logger.info("Rebuilding table %s with columns %s", table, columns)
        conn.execute(f"DROP TABLE IF EXISTS {table}_new;")
        conn.execute(sql.replace(f"CREATE TABLE {table} ", f"CREATE TABLE {table}_new ", 1))
        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            conn.execute(
                f"INSERT INTO {table}_new ({cols}) SELECT {cols} FROM {table};"
            )
        conn.execute(f"DROP TABLE {table};")
        conn.execute(f"ALTER TABLE {table}_new RENAME TO {table};")
        return False

    def _migrate_routine_targets(self, conn: sqlite3.Connection) -> None:
        """Move per-routine targets onto the owning exercise (older schema)."""
        routine_cols = [
            row[1] for row in conn.execute("PRAGMA table_info(routines);").fetchall()
        ]
        if "target_sets" not in routine_cols:
            return
        exercise_cols = [
            row[1] for row in conn.execute("PRAGMA table_info(exercises);").fetchall()
        ]
        for col, col_type in (
            ("target_sets", "INTEGER"),
            ("target_reps", "INTEGER"),
            ("target_weight", "REAL"),
        ):
            if col not in exercise_cols:
                conn.execute(f"ALTER TABLE exercises ADD COLUMN {col} {col_type};")

        has_progression = conn.execute(
            "SELECT COUNT(*) FROM sqlite_master WHERE type='table' AND name='exercise_progression';"
        ).fetchone()[0]
        weight_sources = [
            "(SELECT r.target_weight FROM routines r WHERE r.exercise_id = exercises.id "
            "AND r.target_weight IS NOT NULL ORDER BY r.id LIMIT 1)"
        ]
        if has_progression:
            weight_sources.insert(
                0,
                "(SELECT ep.current_weight FROM exercise_progression ep "
                "WHERE ep.exercise_id = exercises.id AND ep.current_weight IS NOT NULL)",
            )
        conn.execute(
            "UPDATE exercises SET "
            "target_sets = COALESCE(target_sets, (SELECT r.target_sets FROM routines r "
            "WHERE r.exercise_id = exercises.id AND r.target_sets IS NOT NULL ORDER BY r.id LIMIT 1)), "
            "target_reps = COALESCE(target_reps, (SELECT r.target_reps FROM routines r "
            "WHERE r.exercise_id = exercises.id AND r.target_reps IS NOT NULL ORDER BY r.id LIMIT 1)), "
            f"target_weight = COALESCE(target_weight, {', '.join(weight_sources)});"
        )
        conn.execute(
            "DELETE FROM routines WHERE exercise_id NOT IN (SELECT id FROM exercises);"
        )
        logger.info("Moved routine targets onto exercises")

    def _init_metric_types(self, conn: sqlite3.Connection) -> None:
        for name, unit, color, order_index in self._DEFAULT_METRIC_TYPES:
            conn.execute(
                "INSERT OR IGNORE INTO metric_types (name, unit, color, order_index, is_default) "
                "VALUES (?, ?, ?, ?, 1);",
                (name, unit, color, order_index),
            )


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def execute_count(self, query: str, params: Tuple = ()) -> int:
        """Execute a statement and return the number of affected rows."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.rowcount

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def fetch_one(self, query: str, params: Tuple = ()) -> Optional[Tuple]:
        rows = self.fetch_all(query, params)
        return rows[0] if rows else None

    def transaction(self):
        """Context manager yielding one connection holding the write lock.

        Commits on success, rolls back on error.
        """
        return self._connection(immediate=True)

    def _patch(
        self,
        table: str,
        row_id: int,
        changes: dict,
        allowed: Iterable[str],
        label: str,
        touch: bool = False,
        clear: Iterable[str] = (),
    ) -> None:
        """Apply the provided non-null ``changes`` to one row of ``table``.

        Columns named in ``clear`` are set to NULL.
        """
        allowed = tuple(allowed)
        clear = tuple(clear)
        fields = {k: v for k, v in changes.items() if v is not None}
        unknown = [k for k in list(fields) + list(clear) if k not in allowed]
        if unknown:
            raise ValueError(f"unknown fields: {', '.join(sorted(unknown))}")
        if not fields and not clear:
            raise ValueError("No fields to update")
        assignments = [f"{col} = ?" for col in fields]
        assignments += [f"{col} = NULL" for col in clear]
        if touch:
            assignments.append("updated_at = CURRENT_TIMESTAMP")
        params = list(fields.values()) + [row_id]
        count = self.execute_count(
            f"UPDATE {table} SET {', '.join(assignments)} WHERE id = ?;",
            tuple(params),
        )
        if count == 0:
            raise NotFoundError(f"{label} not found")

    def _delete(self, table: str, row_id: int, label: str) -> None:
        if self.execute_count(f"DELETE FROM {table} WHERE id = ?;", (row_id,)) == 0:
            raise NotFoundError(f"{label} not found")


class ExerciseRepository(BaseRepository):
    """Repository for exercise definitions."""

    _COLUMNS = (
        "id",
        "name",
        "type",
        "category",
        "target_sets",
        "target_reps",
        "target_weight",
        "created_at",
    )
    _PATCHABLE = ("name", "type", "category", "target_sets", "target_reps", "target_weight")

    @staticmethod
    def _validate(exercise_type: Optional[str], category: Optional[str]) -> None:
        if exercise_type is not None and exercise_type not in EXERCISE_TYPES:
            raise ValueError(
                "Invalid type. Must be weight, bodyweight, cardio, or assisted"
            )
        if category and category not in CATEGORIES:
            raise ValueError("Invalid category")

    def add(
        self,
        name: str,
        exercise_type: str,
        category: Optional[str] = None,
        target_sets: Optional[int] = None,
        target_reps: Optional[int] = None,
        target_weight: Optional[float] = None,
    ) -> int:
        if not name or not exercise_type:
            raise ValueError("Name and type are required")
        self._validate(exercise_type, category)
        with _unique_conflict("Exercise with this name already exists"):
            return self.execute(
                "INSERT INTO exercises (name, type, category, target_sets, target_reps, target_weight) "
                "VALUES (?, ?, ?, ?, ?, ?);",
                (name, exercise_type, category or None, target_sets, target_reps, target_weight),
            )

    def fetch_all_exercises(
        self,
        search: Optional[str] = None,
        exercise_type: Optional[str] = None,
        category: Optional[str] = None,
        limit: int = 50,
    ) -> List[dict]:
        query = f"SELECT {', '.join(self._COLUMNS)} FROM exercises"
        params: list = []
        where_clauses: list[str] = []
        if search:
            where_clauses.append("name LIKE ?")
            params.append(f"%{search}%")
        if exercise_type:
            where_clauses.append("type = ?")
            params.append(exercise_type)
        if category:
            where_clauses.append("category = ?")
            params.append(category)
        if where_clauses:
            query += " WHERE " + " AND ".join(where_clauses)
        query += " ORDER BY name LIMIT ?;"
        params.append(limit)
        rows = self.fetch_all(query, tuple(params))
        return [dict(zip(self._COLUMNS, row)) for row in rows]

    def fetch_detail(self, exercise_id: int) -> dict:
        row = self.fetch_one(
            f"SELECT {', '.join(self._COLUMNS)} FROM exercises WHERE id = ?;",
            (exercise_id,),
        )
        if row is None:
            raise NotFoundError("Exercise not found")
        return dict(zip(self._COLUMNS, row))

    def fetch_by_name(self, name: str) -> Optional[dict]:
        row = self.fetch_one(
            f"SELECT {', '.join(self._COLUMNS)} FROM exercises WHERE name = ?;",
            (name,),
        )
        return dict(zip(self._COLUMNS, row)) if row else None

    def update(self, exercise_id: int, **changes) -> None:
        self._validate(changes.get("type"), changes.get("category"))
        if changes.get("name") == "":
            raise ValueError("name must not be empty")
        clear = ()
        if changes.get("category") == "":
            # An empty category clears it.
            changes.pop("category")
            clear = ("category",)
        with _unique_conflict("Exercise with this name already exists"):
            self._patch(
                "exercises",
                exercise_id,
                changes,
                self._PATCHABLE,
                "Exercise",
                touch=True,
                clear=clear,
            )

    def delete(self, exercise_id: int) -> None:
        self._delete("exercises", exercise_id, "Exercise")


class RoutineRepository(BaseRepository):
    """Repository for exercises scheduled on days of the week.

    The day view joins in the exercise's ``exercise_progression`` row, whose
    ``last_done`` is written through :meth:`update`.
    """

    def add(self, exercise_id: int, day_of_week: str, notes: Optional[str] = None) -> int:
        validate_day(day_of_week)
        with self.transaction() as conn:
            if conn.execute(
                "SELECT 1 FROM exercises WHERE id = ?;", (exercise_id,)
            ).fetchone() is None:
                raise NotFoundError("Exercise not found")
            order_index = conn.execute(
                "SELECT COALESCE(MAX(order_index), -1) + 1 FROM routines WHERE day_of_week = ?;",
                (day_of_week,),
            ).fetchone()[0]
            cursor = conn.execute(
                "INSERT INTO routines (exercise_id, day_of_week, order_index, notes) VALUES (?, ?, ?, ?);",
                (exercise_id, day_of_week, order_index, notes),
            )
            return cursor.lastrowid

    def fetch_for_day(self, day_of_week: str) -> List[dict]:
        validate_day(day_of_week)
        rows = self.fetch_all(
            """SELECT r.id, r.exercise_id, r.order_index, r.notes,
                      e.name, e.type, e.category,
                      e.target_sets, e.target_reps, e.target_weight,
                      p.current_weight, p.consecutive_successes,
                      p.ready_to_progress, p.last_done
               FROM routines r
               JOIN exercises e ON r.exercise_id = e.id
               LEFT JOIN exercise_progression p ON e.id = p.exercise_id
               WHERE r.day_of_week = ?
               ORDER BY r.order_index;""",
            (day_of_week,),
        )
        return [
            {
                "routine_id": rid,
                "exercise_id": eid,
                "order_index": order_index,
                "notes": notes,
                "name": name,
                "type": ex_type,
                "category": category,
                "target_sets": target_sets,
                "target_reps": target_reps,
                "target_weight": target_weight,
                "current_weight": current_weight,
                "consecutive_successes": successes,
                "ready_to_progress": None if ready is None else bool(ready),
                "last_done": last_done,
            }
            for (
                rid,
                eid,
                order_index,
                notes,
                name,
                ex_type,
                category,
                target_sets,
                target_reps,
                target_weight,
                current_weight,
                successes,
                ready,
                last_done,
            ) in rows
        ]

    def fetch_detail(self, routine_id: int) -> dict:
        row = self.fetch_one(
            "SELECT id, exercise_id, day_of_week, order_index, notes FROM routines WHERE id = ?;",
            (routine_id,),
        )
        if row is None:
            raise NotFoundError("Routine not found")
        return dict(zip(("id", "exercise_id", "day_of_week", "order_index", "notes"), row))

    def update(
        self,
        routine_id: int,
        order_index: Optional[int] = None,
        notes: Optional[str] = None,
        last_done: Optional[str] = None,
    ) -> None:
        """Patch order/notes and record ``last_done``, all in one transaction."""
        fields = {
            k: v
            for k, v in (("order_index", order_index), ("notes", notes))
            if v is not None
        }
        if not fields and last_done is None:
            raise ValueError("No fields to update")
        with _unique_conflict("order_index already used for this day"):
            with self.transaction() as conn:
                row = conn.execute(
                    "SELECT exercise_id FROM routines WHERE id = ?;", (routine_id,)
                ).fetchone()
                if row is None:
                    raise NotFoundError("Routine not found")
                if fields:
                    assignments = ", ".join(f"{col} = ?" for col in fields)
                    conn.execute(
                        f"UPDATE routines SET {assignments} WHERE id = ?;",
                        tuple(fields.values()) + (routine_id,),
                    )
                if last_done is not None:
                    conn.execute(
                        "INSERT INTO exercise_progression (exercise_id, last_done) VALUES (?, ?) "
                        "ON CONFLICT(exercise_id) DO UPDATE SET last_done = excluded.last_done;",
                        (row[0], last_done),
                    )

    def delete(self, routine_id: int) -> None:
        self._delete("routines", routine_id, "Routine")

    def reorder(self, day_of_week: str, routine_ids: List[int]) -> None:
        """Assign order indices 0..n-1 following ``routine_ids``, all or nothing."""
        validate_day(day_of_week)
        if not routine_ids:
            raise ValueError("day_of_week and routine_ids are required")
        if len(set(routine_ids)) != len(routine_ids):
            raise ValueError("routine_ids must be unique")
        with self.transaction() as conn:
            # Park every index first so the (day, order_index) index never clashes.
            for pos, rid in enumerate(routine_ids):
                cursor = conn.execute(
                    "UPDATE routines SET order_index = ? WHERE id = ? AND day_of_week = ?;",
                    (-(pos + 1), rid, day_of_week),
                )
                if cursor.rowcount == 0:
                    raise ValueError(f"routine {rid} is not scheduled on {day_of_week}")
            # Routines left out of the list keep their index and may collide.
            with _unique_conflict("order_index already used for this day"):
                for pos, rid in enumerate(routine_ids):
                    conn.execute(
                        "UPDATE routines SET order_index = ? WHERE id = ?;",
                        (pos, rid),
                    )


class HistoryRepository(BaseRepository):
    """Repository for recorded workout sessions and personal records."""

    _COLUMNS = (
        "id",
        "session_date",
        "weight",
        "sets_completed",
        "completed",
        "volume",
        "is_pr",
        "notes",
    )
    _PATCHABLE = ("weight", "sets_completed", "completed", "volume", "notes")

    @classmethod
    def _row_to_dict(cls, row: Tuple) -> dict:
        data = dict(zip(cls._COLUMNS, row))
        data["sets_completed"] = json.loads(data["sets_completed"])
        data["completed"] = bool(data["completed"])
        data["is_pr"] = bool(data["is_pr"])
        return data

    def add(
        self,
        exercise_id: int,
        session_date: str,
        sets_completed: List[int],
        weight: Optional[float] = None,
        completed: bool = False,
        volume: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> Tuple[int, bool]:
        """Insert a session and return ``(id, is_pr)``.

        The PR check, the clearing of the previous PR flag and the insert
        share one transaction, so at most one row per exercise is flagged.
        """
        if not exercise_id or not session_date or not sets_completed:
            raise ValueError("exercise_id, session_date, and sets_completed are required")
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT type FROM exercises WHERE id = ?;", (exercise_id,)
            ).fetchone()
            if row is None:
                raise NotFoundError("Exercise not found")
            exercise_type = row[0]
            pr = False
            if weight is not None and weight > 0:
                aggregate = "MIN" if exercise_type in DESCENDING_TYPES else "MAX"
                extreme = conn.execute(
                    f"SELECT {aggregate}(weight) FROM history WHERE exercise_id = ? AND weight > 0;",
                    (exercise_id,),
                ).fetchone()[0]
                pr = is_new_pr(exercise_type, weight, extreme)
                if pr:
                    conn.execute(
                        "UPDATE history SET is_pr = 0 WHERE exercise_id = ?;",
                        (exercise_id,),
                    )
            cursor = conn.execute(
                "INSERT INTO history (exercise_id, session_date, weight, sets_completed, completed, volume, is_pr, notes) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
                (
                    exercise_id,
                    session_date,
                    weight,
                    json.dumps(list(sets_completed)),
                    int(completed),
                    volume,
                    int(pr),
                    notes,
                ),
            )
            return cursor.lastrowid, pr

    def fetch_for_exercise(self, exercise_id: int, limit: int = 200) -> List[dict]:
        rows = self.fetch_all(
            f"SELECT {', '.join(self._COLUMNS)} FROM history WHERE exercise_id = ? "
            "ORDER BY session_date DESC, id DESC LIMIT ?;",
            (exercise_id, limit),
        )
        return [self._row_to_dict(row) for row in rows]

    def fetch_detail(self, history_id: int) -> dict:
        row = self.fetch_one(
            f"SELECT {', '.join(self._COLUMNS)} FROM history WHERE id = ?;",
            (history_id,),
        )
        if row is None:
            raise NotFoundError("History entry not found")
        return self._row_to_dict(row)

    def fetch_pr(self, exercise_id: int) -> Optional[dict]:
        row = self.fetch_one(
            "SELECT session_date, weight, volume FROM history "
            "WHERE exercise_id = ? AND is_pr = 1 ORDER BY session_date DESC LIMIT 1;",
            (exercise_id,),
        )
        if row is None:
            return None
        date, weight, volume = row
        return {"weight": weight, "date": date, "volume": volume}

    def update(self, history_id: int, **changes) -> None:
        if changes.get("sets_completed") is not None:
            changes["sets_completed"] = json.dumps(list(changes["sets_completed"]))
        if changes.get("completed") is not None:
            changes["completed"] = int(changes["completed"])
        self._patch("history", history_id, changes, self._PATCHABLE, "History entry")

    def delete(self, history_id: int) -> None:
        self._delete("history", history_id, "History entry")


class DayTitleRepository(BaseRepository):
    """Titles shown above each day of the weekly routine."""

    def set(self, day_of_week: str, title: str) -> None:
        validate_day(day_of_week)
        self.execute(
            "INSERT INTO day_titles (day_of_week, title) VALUES (?, ?) "
            "ON CONFLICT(day_of_week) DO UPDATE SET title = excluded.title;",
            (day_of_week, title),
        )

    def fetch(self, day_of_week: str) -> Optional[str]:
        validate_day(day_of_week)
        row = self.fetch_one(
            "SELECT title FROM day_titles WHERE day_of_week = ?;", (day_of_week,)
        )
        return row[0] if row else None

    def fetch_all_titles(self) -> dict:
        titles = dict(self.fetch_all("SELECT day_of_week, title FROM day_titles;"))
        return {day: titles[day] for day in DAYS_OF_WEEK if day in titles}


class MetricTypeRepository(BaseRepository):
    """User-defined body measurement series."""

    _COLUMNS = ("id", "name", "unit", "color", "order_index", "is_default", "created_at")
    _PATCHABLE = ("name", "unit", "color", "order_index")

    def add(
        self,
        name: str,
        unit: str,
        color: str,
        order_index: int = 0,
        is_default: bool = False,
    ) -> int:
        if not name or not unit or not color:
            raise ValueError("Name, unit, and color are required")
        with _unique_conflict("Metric type with this name already exists"):
            return self.execute(
                "INSERT INTO metric_types (name, unit, color, order_index, is_default) VALUES (?, ?, ?, ?, ?);",
                (name, unit, color, order_index, int(is_default)),
            )

    def _to_dict(self, row: Tuple) -> dict:
        data = dict(zip(self._COLUMNS, row))
        data["is_default"] = bool(data["is_default"])
        return data

    def fetch_all_types(self) -> List[dict]:
        rows = self.fetch_all(
            f"SELECT {', '.join(self._COLUMNS)} FROM metric_types ORDER BY order_index, id;"
        )
        return [self._to_dict(row) for row in rows]

    def fetch_detail(self, metric_type_id: int) -> dict:
        row = self.fetch_one(
            f"SELECT {', '.join(self._COLUMNS)} FROM metric_types WHERE id = ?;",
            (metric_type_id,),
        )
        if row is None:
            raise NotFoundError("Metric type not found")
        return self._to_dict(row)

    def update(self, metric_type_id: int, **changes) -> None:
        for field in ("name", "unit", "color"):
            if changes.get(field) == "":
                raise ValueError(f"{field} must not be empty")
        with _unique_conflict("Metric type with this name already exists"):
            self._patch(
                "metric_types",
                metric_type_id,
                changes,
                self._PATCHABLE,
                "Metric type",
                touch=True,
            )

    def delete(self, metric_type_id: int) -> None:
        if self.fetch_detail(metric_type_id)["is_default"]:
            raise ValueError("Default metric types cannot be deleted")
        self._delete("metric_types", metric_type_id, "Metric type")

    def reorder(self, orders: Iterable[Tuple[int, int]]) -> None:
        """Apply ``(id, order_index)`` pairs in one transaction."""
        with self.transaction() as conn:
            for metric_type_id, order_index in orders:
                cursor = conn.execute(
                    "UPDATE metric_types SET order_index = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?;",
                    (order_index, metric_type_id),
                )
                if cursor.rowcount == 0:
                    raise NotFoundError(f"Metric type {metric_type_id} not found")


class MetricEntryRepository(BaseRepository):
    """Dated values for metric types."""

    _COLUMNS = ("id", "metric_type_id", "entry_date", "value", "notes", "created_at")
    _PATCHABLE = ("value", "entry_date", "notes")

    def add(
        self,
        metric_type_id: int,
        entry_date: str,
        value: float,
        notes: Optional[str] = None,
    ) -> int:
        if not metric_type_id or not entry_date:
            raise ValueError("Metric type ID and entry date are required")
        with self.transaction() as conn:
            if conn.execute(
                "SELECT 1 FROM metric_types WHERE id = ?;", (metric_type_id,)
            ).fetchone() is None:
                raise NotFoundError("Metric type not found")
            cursor = conn.execute(
                "INSERT INTO metric_entries (metric_type_id, entry_date, value, notes) VALUES (?, ?, ?, ?);",
                (metric_type_id, entry_date, value, notes),
            )
            return cursor.lastrowid

    def fetch_for_type(self, metric_type_id: int, limit: int = 30) -> List[dict]:
        query = (
            f"SELECT {', '.join(self._COLUMNS)} FROM metric_entries "
            "WHERE metric_type_id = ? ORDER BY entry_date DESC, id DESC"
        )
        params: list = [metric_type_id]
        if limit > 0:
            query += " LIMIT ?"
            params.append(limit)
        rows = self.fetch_all(query + ";", tuple(params))
        return [dict(zip(self._COLUMNS, row)) for row in rows]

    def latest(self, metric_type_id: int) -> Optional[dict]:
        entries = self.fetch_for_type(metric_type_id, limit=1)
        return entries[0] if entries else None

    def fetch_detail(self, entry_id: int) -> dict:
        row = self.fetch_one(
            f"SELECT {', '.join(self._COLUMNS)} FROM metric_entries WHERE id = ?;",
            (entry_id,),
        )
        if row is None:
            raise NotFoundError("Metric entry not found")
        return dict(zip(self._COLUMNS, row))

    def dashboard(self, days: int = 30) -> dict[int, List[dict]]:
        """Entries of the last ``days`` days grouped by metric type id."""
        rows = self.fetch_all(
            f"SELECT {', '.join(self._COLUMNS)} FROM metric_entries "
            "WHERE entry_date >= date('now', ?) ORDER BY entry_date DESC, id DESC;",
            (f"-{int(days)} days",),
        )
        data: dict[int, List[dict]] = {}
        for row in rows:
            entry = dict(zip(self._COLUMNS, row))
            data.setdefault(entry["metric_type_id"], []).append(entry)
        return data

    def update(self, entry_id: int, **changes) -> None:
        self._patch("metric_entries", entry_id, changes, self._PATCHABLE, "Metric entry")

    def delete(self, entry_id: int) -> None:
        self._delete("metric_entries", entry_id, "Metric entry")
