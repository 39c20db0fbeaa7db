"""SQLite-backed storage collaborator for measurements and resonance totals.

Point awards go through :meth:`AccrualStore.apply_accrual`, which adds the
delta and writes a ledger row keyed by an event id in one transaction.  A
retried event id is a no-op, so a caller may safely retry after a failure
without double-crediting the user.

Multi-step writes (a measurement with its points and badges, a vibe with both
rewards) each run in a single transaction, so a failure leaves nothing
half-applied.
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from threading import RLock
from typing import Any
from uuid import uuid4

from .constants import WELCOME_BONUS
from .domain_models import MeasurementResult, UserAccrualState, parse_datetime

LOGGER = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS schema_meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
    user_id             TEXT PRIMARY KEY,
    username            TEXT NOT NULL,
    vibrations          INTEGER NOT NULL DEFAULT 0 CHECK (vibrations >= 0),
    total_measurements  INTEGER NOT NULL DEFAULT 0,
    streak_days         INTEGER NOT NULL DEFAULT 0,
    last_measured_at    TEXT,
    created_at          TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS locations (
    location_id         TEXT PRIMARY KEY,
    name                TEXT NOT NULL,
    location_type       TEXT,
    city                TEXT,
    measurement_count   INTEGER NOT NULL DEFAULT 0,
    avg_vibe_score      REAL,
    created_at          TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS measurements (
    measurement_id  TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL REFERENCES users(user_id),
    location_id     TEXT NOT NULL REFERENCES locations(location_id),
    vibe_score      INTEGER NOT NULL,
    comfort_rating  INTEGER NOT NULL,
    result_json     TEXT NOT NULL,
    created_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_measurements_user ON measurements(user_id);
CREATE INDEX IF NOT EXISTS idx_measurements_location ON measurements(location_id);

CREATE TABLE IF NOT EXISTS accrual_events (
    event_id    TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL REFERENCES users(user_id),
    delta       INTEGER NOT NULL,
    reason      TEXT NOT NULL DEFAULT '',
    total_after INTEGER NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS user_badges (
    user_id     TEXT NOT NULL REFERENCES users(user_id),
    badge_id    TEXT NOT NULL,
    earned_at   TEXT NOT NULL,
    PRIMARY KEY (user_id, badge_id)
);

CREATE TABLE IF NOT EXISTS vibes_sent (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    sender_id       TEXT NOT NULL REFERENCES users(user_id),
    recipient_id    TEXT NOT NULL REFERENCES users(user_id),
    message         TEXT NOT NULL DEFAULT '',
    request_id      TEXT UNIQUE,
    created_at      TEXT NOT NULL
);
"""


class StorageError(RuntimeError):
    """A storage call failed; the caller decides whether to retry."""


class UnknownUserError(StorageError):
    pass


class UnknownLocationError(StorageError):
    pass


@dataclass(frozen=True, slots=True)
class AccrualReceipt:
    event_id: str
    delta: int
    old_total: int
    new_total: int
    applied: bool
    """False when the event id had already been applied earlier."""


@dataclass(frozen=True, slots=True)
class MeasurementReceipt:
    measurement_id: str
    accrual: AccrualReceipt
    granted_badges: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class VibesReceipt:
    vibes_id: int
    sender: AccrualReceipt
    recipient: AccrualReceipt
    applied: bool


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AccrualStore:
    """Thin wrapper around a SQLite database for users, locations and points."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path) if str(db_path) != ":memory:" else None
        self._lock = RLock()
        if self.db_path is not None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            str(self.db_path) if self.db_path is not None else ":memory:",
            check_same_thread=False,
        )
        if self.db_path is not None:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._ensure_schema()

    # -- lifecycle ------------------------------------------------------------

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _cursor(self, *, commit: bool = True) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            cur = self._conn.cursor()
            try:
                yield cur
                if commit:
                    self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StorageError(str(exc) or type(exc).__name__) from exc
            except Exception:
                self._conn.rollback()
                raise
            finally:
                cur.close()

    @staticmethod
    def _safe_json_dumps(value: Any) -> str:
        def _sanitize(item: Any) -> Any:
            if isinstance(item, float):
                return item if math.isfinite(item) else None
            if isinstance(item, dict):
                return {k: _sanitize(v) for k, v in item.items()}
            if isinstance(item, (list, tuple)):
                return [_sanitize(v) for v in item]
            return item

        return json.dumps(_sanitize(value), ensure_ascii=False, allow_nan=False)

    def _ensure_schema(self) -> None:
        with self._cursor() as cur:
            cur.executescript(_SCHEMA_SQL)
        with self._cursor() as cur:
            cur.execute("SELECT value FROM schema_meta WHERE key = ?", ("version",))
            row = cur.fetchone()
            if row is None:
                cur.execute(
                    "INSERT INTO schema_meta (key, value) VALUES (?, ?)",
                    ("version", str(_SCHEMA_VERSION)),
                )
                return
            version = int(str(row[0]))
            if version != _SCHEMA_VERSION:
                raise StorageError(
                    f"Unsupported accrual DB schema version {version}; "
                    f"expected {_SCHEMA_VERSION}. Delete the database file to recreate."
                )

    # -- users & locations ----------------------------------------------------

    def ensure_user(
        self, user_id: str, username: str | None = None, *, welcome_bonus: int = WELCOME_BONUS
    ) -> bool:
        """Create *user_id* if missing, crediting the welcome bonus. Returns True if created."""
        now = _utc_now_iso()
        with self._cursor() as cur:
            cur.execute("SELECT 1 FROM users WHERE user_id = ?", (user_id,))
            if cur.fetchone() is not None:
                return False
            cur.execute(
                "INSERT INTO users (user_id, username, vibrations, created_at) VALUES (?, ?, ?, ?)",
                (user_id, username or user_id, welcome_bonus, now),
            )
            cur.execute(
                "INSERT INTO accrual_events (event_id, user_id, delta, reason, total_after, "
                "created_at) VALUES (?, ?, ?, 'welcome', ?, ?)",
                (f"welcome:{user_id}", user_id, welcome_bonus, welcome_bonus, now),
            )
        LOGGER.info("Created user %s with %d welcome vibrations", user_id, welcome_bonus)
        return True

    def ensure_location(
        self,
        location_id: str,
        name: str | None = None,
        location_type: str | None = None,
        city: str | None = None,
    ) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "INSERT OR IGNORE INTO locations (location_id, name, location_type, city, "
                "created_at) VALUES (?, ?, ?, ?, ?)",
                (location_id, name or location_id, location_type, city, _utc_now_iso()),
            )
            return cur.rowcount > 0

    def get_location(self, location_id: str) -> dict[str, Any] | None:
        with self._cursor(commit=False) as cur:
            cur.execute(
                "SELECT location_id, name, location_type, city, measurement_count, avg_vibe_score "
                "FROM locations WHERE location_id = ?",
                (location_id,),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return {
            "location_id": row[0],
            "name": row[1],
            "location_type": row[2],
            "city": row[3],
            "measurement_count": int(row[4]),
            "avg_vibe_score": row[5],
        }

    def location_measurement_count(self, location_id: str) -> int:
        with self._cursor(commit=False) as cur:
            cur.execute(
                "SELECT COUNT(*) FROM measurements WHERE location_id = ?", (location_id,)
            )
            return int(cur.fetchone()[0])

    def user_has_measured_location(self, user_id: str, location_id: str) -> bool:
        with self._cursor(commit=False) as cur:
            cur.execute(
                "SELECT 1 FROM measurements WHERE user_id = ? AND location_id = ? LIMIT 1",
                (user_id, location_id),
            )
            return cur.fetchone() is not None

    def user_has_measured_city(self, user_id: str, city: str) -> bool:
        with self._cursor(commit=False) as cur:
            cur.execute(
                "SELECT 1 FROM measurements m JOIN locations l ON l.location_id = m.location_id "
                "WHERE m.user_id = ? AND l.city = ? LIMIT 1",
                (user_id, city),
            )
            return cur.fetchone() is not None

    # -- accrual state --------------------------------------------------------

    def load_user_accrual_state(self, user_id: str) -> UserAccrualState:
        with self._cursor(commit=False) as cur:
            cur.execute(
                "SELECT vibrations, total_measurements, streak_days, last_measured_at "
                "FROM users WHERE user_id = ?",
                (user_id,),
            )
            row = cur.fetchone()
            if row is None:
                raise UnknownUserError(f"Unknown user {user_id!r}")
            cur.execute("SELECT badge_id FROM user_badges WHERE user_id = ?", (user_id,))
            badge_ids = frozenset(str(r[0]) for r in cur.fetchall())
            cur.execute(
                "SELECT l.location_type, COUNT(DISTINCT m.location_id) FROM measurements m "
                "JOIN locations l ON l.location_id = m.location_id "
                "WHERE m.user_id = ? GROUP BY l.location_type",
                (user_id,),
            )
            per_type = {str(r[0]): int(r[1]) for r in cur.fetchall() if r[0] is not None}
            cur.execute(
                "SELECT COUNT(DISTINCT l.city) FROM measurements m "
                "JOIN locations l ON l.location_id = m.location_id "
                "WHERE m.user_id = ? AND l.city IS NOT NULL AND l.city != ''",
                (user_id,),
            )
            cities = int(cur.fetchone()[0])
            cur.execute(
                "SELECT COUNT(DISTINCT recipient_id) FROM vibes_sent WHERE sender_id = ?",
                (user_id,),
            )
            recipients = int(cur.fetchone()[0])
        return UserAccrualState(
            user_id=user_id,
            vibrations=int(row[0]),
            total_measurements=int(row[1]),
            streak_days=int(row[2]),
            earned_badge_ids=badge_ids,
            last_measured_at=parse_datetime(row[3]),
            distinct_cafes=per_type.get("cafe", 0),
            distinct_libraries=per_type.get("library", 0),
            distinct_cities=cities,
            distinct_vibe_recipients=recipients,
        )

    def save_measurement(
        self,
        result: MeasurementResult,
        location_id: str,
        user_id: str,
        *,
        measurement_id: str | None = None,
        streak_days: int | None = None,
    ) -> str:
        """Persist *result* and update the user and location aggregates atomically.

        Saving the same ``measurement_id`` twice is a no-op returning that id.
        """
        mid = measurement_id or uuid4().hex
        with self._cursor() as cur:
            self._save_measurement(cur, result, location_id, user_id, mid, streak_days)
        return mid

    def record_measurement(
        self,
        result: MeasurementResult,
        location_id: str,
        user_id: str,
        *,
        measurement_id: str,
        points: int,
        streak_days: int | None = None,
        badge_ids: Iterable[str] = (),
    ) -> MeasurementReceipt:
        """Save a measurement, credit its points and grant its badges in one transaction.

        Either every write lands or none does.  Repeating a call with the same
        ``measurement_id`` completes whatever is missing and never credits twice.
        """
        with self._cursor() as cur:
            self._save_measurement(cur, result, location_id, user_id, measurement_id, streak_days)
            accrual = self._apply_accrual(
                cur, user_id, points, f"measurement:{measurement_id}", "measurement"
            )
            granted = self._grant_badges(cur, user_id, badge_ids)
        return MeasurementReceipt(
            measurement_id=measurement_id, accrual=accrual, granted_badges=tuple(granted)
        )

    def _save_measurement(
        self,
        cur: sqlite3.Cursor,
        result: MeasurementResult,
        location_id: str,
        user_id: str,
        mid: str,
        streak_days: int | None,
    ) -> bool:
        created_at = result.created_at.isoformat()
        cur.execute("SELECT 1 FROM measurements WHERE measurement_id = ?", (mid,))
        if cur.fetchone() is not None:
            LOGGER.debug("Measurement %s already saved", mid)
            return False
        cur.execute("SELECT 1 FROM users WHERE user_id = ?", (user_id,))
        if cur.fetchone() is None:
            raise UnknownUserError(f"Unknown user {user_id!r}")
        cur.execute(
            "SELECT measurement_count, avg_vibe_score FROM locations WHERE location_id = ?",
            (location_id,),
        )
        loc_row = cur.fetchone()
        if loc_row is None:
            raise UnknownLocationError(f"Unknown location {location_id!r}")
        cur.execute(
            "INSERT INTO measurements (measurement_id, user_id, location_id, vibe_score, "
            "comfort_rating, result_json, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                mid,
                user_id,
                location_id,
                result.vibe_score,
                result.comfort_rating,
                self._safe_json_dumps(result.to_dict()),
                created_at,
            ),
        )
        count = int(loc_row[0])
        avg = float(loc_row[1]) if loc_row[1] is not None else 0.0
        new_avg = (avg * count + result.vibe_score) / (count + 1)
        cur.execute(
            "UPDATE locations SET measurement_count = ?, avg_vibe_score = ? "
            "WHERE location_id = ?",
            (count + 1, new_avg, location_id),
        )
        cur.execute(
            "UPDATE users SET total_measurements = total_measurements + 1, "
            "last_measured_at = ?, streak_days = COALESCE(?, streak_days) WHERE user_id = ?",
            (created_at, streak_days, user_id),
        )
        return True

    def apply_accrual(
        self, user_id: str, delta: int, event_id: str, *, reason: str = ""
    ) -> AccrualReceipt:
        """Atomically add *delta* to the user's vibrations, at most once per *event_id*."""
        with self._cursor() as cur:
            return self._apply_accrual(cur, user_id, delta, event_id, reason)

    def _apply_accrual(
        self, cur: sqlite3.Cursor, user_id: str, delta: int, event_id: str, reason: str
    ) -> AccrualReceipt:
        existing = self._ledger_receipt(cur, event_id)
        if existing is not None:
            return existing
        cur.execute("SELECT vibrations FROM users WHERE user_id = ?", (user_id,))
        row = cur.fetchone()
        if row is None:
            raise UnknownUserError(f"Unknown user {user_id!r}")
        old_total = int(row[0])
        new_total = old_total + int(delta)
        if new_total < 0:
            raise StorageError(f"Accrual of {delta} would make vibrations negative for {user_id!r}")
        cur.execute(
            "UPDATE users SET vibrations = vibrations + ? WHERE user_id = ?",
            (int(delta), user_id),
        )
        cur.execute(
            "INSERT INTO accrual_events (event_id, user_id, delta, reason, total_after, "
            "created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (event_id, user_id, int(delta), reason, new_total, _utc_now_iso()),
        )
        return AccrualReceipt(
            event_id=event_id,
            delta=int(delta),
            old_total=old_total,
            new_total=new_total,
            applied=True,
        )

    @staticmethod
    def _ledger_receipt(cur: sqlite3.Cursor, event_id: str) -> AccrualReceipt | None:
        cur.execute("SELECT delta, total_after FROM accrual_events WHERE event_id = ?", (event_id,))
        row = cur.fetchone()
        if row is None:
            return None
        prior_delta, total_after = int(row[0]), int(row[1])
        return AccrualReceipt(
            event_id=event_id,
            delta=prior_delta,
            old_total=total_after - prior_delta,
            new_total=total_after,
            applied=False,
        )

    def grant_badges(self, user_id: str, badge_ids: Iterable[str]) -> list[str]:
        """Record badges; returns the ids that were not already held."""
        with self._cursor() as cur:
            return self._grant_badges(cur, user_id, badge_ids)

    @staticmethod
    def _grant_badges(cur: sqlite3.Cursor, user_id: str, badge_ids: Iterable[str]) -> list[str]:
        granted: list[str] = []
        now = _utc_now_iso()
        for badge_id in badge_ids:
            cur.execute(
                "INSERT OR IGNORE INTO user_badges (user_id, badge_id, earned_at) VALUES (?, ?, ?)",
                (user_id, badge_id, now),
            )
            if cur.rowcount > 0:
                granted.append(badge_id)
        return granted

    # -- social ---------------------------------------------------------------

    def record_vibes_sent(
        self,
        sender_id: str,
        recipient_id: str,
        message: str = "",
        *,
        sender_reward: int = 0,
        recipient_reward: int = 0,
        request_id: str | None = None,
    ) -> VibesReceipt:
        """Record a vibe and credit both sides in one transaction.

        A repeated *request_id* returns the receipts of the first call without
        writing anything.
        """
        if sender_id == recipient_id:
            raise ValueError("Cannot send vibes to yourself")
        with self._cursor() as cur:
            if request_id is not None:
                cur.execute("SELECT id FROM vibes_sent WHERE request_id = ?", (request_id,))
                row = cur.fetchone()
                if row is not None:
                    vibes_id = int(row[0])
                    sender = self._ledger_receipt(cur, f"vibes:{vibes_id}:sender")
                    recipient = self._ledger_receipt(cur, f"vibes:{vibes_id}:recipient")
                    if sender is None or recipient is None:
                        raise StorageError(f"Ledger rows missing for vibes {vibes_id}")
                    LOGGER.debug("Vibes request %s already recorded as %d", request_id, vibes_id)
                    return VibesReceipt(
                        vibes_id=vibes_id, sender=sender, recipient=recipient, applied=False
                    )
            cur.execute(
                "INSERT INTO vibes_sent (sender_id, recipient_id, message, request_id, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (sender_id, recipient_id, message[:280], request_id, _utc_now_iso()),
            )
            vibes_id = int(cur.lastrowid or 0)
            sender = self._apply_accrual(
                cur, sender_id, sender_reward, f"vibes:{vibes_id}:sender", "send_vibes"
            )
            recipient = self._apply_accrual(
                cur, recipient_id, recipient_reward, f"vibes:{vibes_id}:recipient", "receive_vibes"
            )
        return VibesReceipt(vibes_id=vibes_id, sender=sender, recipient=recipient, applied=True)

    def leaderboard(self, limit: int = 10) -> list[dict[str, Any]]:
        with self._cursor(commit=False) as cur:
            cur.execute(
                "SELECT user_id, username, vibrations, total_measurements FROM users "
                "ORDER BY vibrations DESC, user_id ASC LIMIT ?",
                (max(1, int(limit)),),
            )
            rows = cur.fetchall()
        return [
            {
                "user_id": r[0],
                "username": r[1],
                "vibrations": int(r[2]),
                "total_measurements": int(r[3]),
            }
            for r in rows
        ]
