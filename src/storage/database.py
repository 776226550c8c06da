import logging
from datetime import datetime
from pathlib import Path

import aiosqlite

from src.models.enums import NotificationScenario, StepPhase, StepState
from src.models.records import StepStatusRecord, TripLocationRecord
from src.models.status import TripNotification

logger = logging.getLogger(__name__)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class DatabaseManager:
    """Async SQLite database manager with typed repository methods.

    All SQL in the application lives in this class. Other layers
    call typed methods that accept and return Pydantic models.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = str(db_path)
        self.connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL mode, execute schema."""
        self.connection = await aiosqlite.connect(self.db_path)
        self.connection.row_factory = aiosqlite.Row
        schema_path = Path(__file__).parent / "schema.sql"
        schema_sql = schema_path.read_text()
        await self.connection.executescript(schema_sql)
        await self.connection.execute("PRAGMA journal_mode=WAL")
        await self.connection.commit()
        logger.info(f"Database initialized at {self.db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self.connection:
            await self.connection.close()
            self.connection = None

    async def __aenter__(self) -> "DatabaseManager":
        await self.initialize()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        await self.close()

    async def execute(self, sql: str, params: tuple = ()) -> aiosqlite.Cursor:
        """Execute a single SQL statement and commit."""
        assert self.connection is not None
        cursor = await self.connection.execute(sql, params)
        await self.connection.commit()
        return cursor

    async def fetch_one(self, sql: str, params: tuple = ()) -> dict | None:
        """Execute a query and return a single row as a dict, or None."""
        assert self.connection is not None
        cursor = await self.connection.execute(sql, params)
        row = await cursor.fetchone()
        if row is None:
            return None
        return dict(row)

    async def fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        """Execute a query and return all rows as list of dicts."""
        assert self.connection is not None
        cursor = await self.connection.execute(sql, params)
        rows = await cursor.fetchall()
        return [dict(r) for r in rows]

    # ── Trip Locations ────────────────────────────────────────────────────

    async def save_trip_location(self, record: TripLocationRecord) -> int:
        """Append one GPS ping. Returns the new row id."""
        cursor = await self.execute(
            """INSERT INTO trip_locations
               (trip_id, user_email, step_id, activity_type, place_name,
                latitude, longitude, accuracy, source, timestamp)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                record.trip_id,
                record.user_email,
                record.step_id,
                record.activity_type,
                record.place_name,
                record.latitude,
                record.longitude,
                record.accuracy,
                record.source,
                _iso(record.timestamp),
            ),
        )
        return cursor.lastrowid  # type: ignore[return-value]

    async def get_trip_locations(
        self, trip_id: str, limit: int | None = None
    ) -> list[TripLocationRecord]:
        """Pings for a trip in write order; with *limit*, only the most recent ones."""
        if limit is not None:
            rows = await self.fetch_all(
                """SELECT * FROM (
                       SELECT * FROM trip_locations WHERE trip_id = ?
                       ORDER BY id DESC LIMIT ?
                   ) ORDER BY id ASC""",
                (trip_id, limit),
            )
        else:
            rows = await self.fetch_all(
                "SELECT * FROM trip_locations WHERE trip_id = ? ORDER BY id ASC",
                (trip_id,),
            )
        return [
            TripLocationRecord(
                id=r["id"],
                trip_id=r["trip_id"],
                user_email=r["user_email"],
                step_id=r["step_id"],
                activity_type=r["activity_type"],
                place_name=r["place_name"],
                latitude=r["latitude"],
                longitude=r["longitude"],
                accuracy=r["accuracy"],
                source=r["source"],
                timestamp=_parse(r["timestamp"]),
                created_at=_parse(r["created_at"]),
            )
            for r in rows
        ]

    # ── Step Statuses ─────────────────────────────────────────────────────

    async def save_step_status(self, record: StepStatusRecord) -> None:
        """Upsert the status of one step, keyed by ``{trip_id}_{step_id}``."""
        await self.execute(
            """INSERT INTO step_statuses
               (id, trip_id, step_id, user_email, activity_type, place_name,
                status, delta_minutes, actual_arrival_time, phase, performing,
                updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?,
                       strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
               ON CONFLICT(id) DO UPDATE SET
                   user_email = excluded.user_email,
                   activity_type = excluded.activity_type,
                   place_name = excluded.place_name,
                   status = excluded.status,
                   delta_minutes = excluded.delta_minutes,
                   actual_arrival_time = excluded.actual_arrival_time,
                   phase = excluded.phase,
                   performing = excluded.performing,
                   updated_at = excluded.updated_at""",
            (
                f"{record.trip_id}_{record.step_id}",
                record.trip_id,
                record.step_id,
                record.user_email,
                record.activity_type,
                record.place_name,
                record.status.value,
                record.delta_minutes,
                _iso(record.actual_arrival_time),
                record.phase.value if record.phase else None,
                None if record.performing is None else int(record.performing),
            ),
        )

    async def get_step_status(self, trip_id: str, step_id: str) -> StepStatusRecord | None:
        row = await self.fetch_one(
            "SELECT * FROM step_statuses WHERE id = ?", (f"{trip_id}_{step_id}",)
        )
        if not row:
            return None
        return self._row_to_step_status(row)

    async def get_step_statuses(self, trip_id: str) -> list[StepStatusRecord]:
        rows = await self.fetch_all(
            "SELECT * FROM step_statuses WHERE trip_id = ? ORDER BY step_id",
            (trip_id,),
        )
        return [self._row_to_step_status(r) for r in rows]

    @staticmethod
    def _row_to_step_status(row: dict) -> StepStatusRecord:
        return StepStatusRecord(
            trip_id=row["trip_id"],
            step_id=row["step_id"],
            user_email=row["user_email"],
            activity_type=row["activity_type"],
            place_name=row["place_name"],
            status=StepState(row["status"]),
            delta_minutes=row["delta_minutes"],
            actual_arrival_time=_parse(row["actual_arrival_time"]),
            phase=StepPhase(row["phase"]) if row["phase"] else None,
            performing=None if row["performing"] is None else bool(row["performing"]),
            updated_at=_parse(row["updated_at"]),
        )

    # ── Notifications ─────────────────────────────────────────────────────

    async def record_notification(self, notification: TripNotification) -> bool:
        """Store a notification unless its key was already seen for the trip.

        Returns:
            True when the notification is new.
        """
        cursor = await self.execute(
            """INSERT OR IGNORE INTO trip_notifications
               (trip_id, notification_key, step_id, scenario, title, body)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                notification.trip_id,
                notification.key,
                notification.step_id,
                notification.scenario.value,
                notification.title,
                notification.body,
            ),
        )
        return cursor.rowcount == 1

    async def get_notifications(self, trip_id: str) -> list[TripNotification]:
        rows = await self.fetch_all(
            """SELECT * FROM trip_notifications WHERE trip_id = ?
               ORDER BY created_at, rowid""",
            (trip_id,),
        )
        return [
            TripNotification(
                key=r["notification_key"],
                trip_id=r["trip_id"],
                step_id=r["step_id"],
                scenario=NotificationScenario(r["scenario"]),
                title=r["title"],
                body=r["body"],
            )
            for r in rows
        ]

    async def clear_trip_notifications(self, trip_id: str) -> int:
        """Forget every notification key of a trip. Returns the number removed."""
        cursor = await self.execute(
            "DELETE FROM trip_notifications WHERE trip_id = ?", (trip_id,)
        )
        return cursor.rowcount
