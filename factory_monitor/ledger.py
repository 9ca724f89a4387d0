"""Daily production ledger.

Tracks, per device, a day-scoped unit counter and a most-recent-first log
of the products seen today.  State is persisted through a
:class:`KeyValueStore` under device-scoped keys::

    device:<id>:counter          {"date": "2026-10-19", "count": 42}
    device:<id>:log              {"date": "2026-10-19", "count": 42, "entries": [...]}
    device:<id>:counter:<date>   archived counter of a finished day

Every mutation writes the counter first and the log second.  The log
record carries the count it was written with, so on load a counter that
disagrees with today's log (a crash between the two writes) is re-derived
from the log.

The counter resets exactly once per local calendar day.  A unit stamped
after the stored day rolls the ledger over on the spot; the
:class:`RolloverTimer` covers days on which no unit arrives.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import date, timedelta
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from factory_monitor.clock import Clock, in_day, local_now, next_midnight, to_local
from factory_monitor.errors import PersistenceError
from factory_monitor.models import DailyCounter, ProductionLogEntry
from factory_monitor.persistence.base import KeyValueStore, device_key

__all__ = ["DailyCounterLedger", "LedgerState", "RolloverTimer"]

logger = logging.getLogger("factory_monitor.ledger")

COUNTER = "counter"
LOG = "log"


class LedgerState(BaseModel):
    """In-memory state of one device's ledger for one day."""

    day: date
    count: int = Field(default=0, ge=0)
    log: list[ProductionLogEntry] = Field(default_factory=list)


# -----------------------------------------------------------------------
# Rollover timer
# -----------------------------------------------------------------------


class RolloverTimer:
    """One-shot timer firing at the next local midnight plus *grace_s*.

    The timer belongs to the currently selected device.  Every ``arm`` or
    ``disarm`` bumps a generation counter; a callback that fires for an
    older generation (or another device) is ignored.  After a successful
    fire the timer re-arms itself for the following midnight.
    """

    def __init__(
        self,
        *,
        clock: Clock = local_now,
        grace_s: float = 5.0,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._clock = clock
        self._grace_s = grace_s
        self._loop = loop
        self._generation = 0
        self._device_id: str | None = None
        self._callback: Callable[[str], Any] | None = None
        self._handle: asyncio.TimerHandle | None = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def device_id(self) -> str | None:
        return self._device_id

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def delay_s(self) -> float:
        """Seconds from now until the next fire."""
        now = self._clock()
        return max(0.0, (next_midnight(now) - now).total_seconds() + self._grace_s)

    def arm(self, device_id: str, callback: Callable[[str], Any]) -> int:
        """(Re-)arm for *device_id*, cancelling any previous arming."""
        self._cancel_handle()
        self._generation += 1
        self._device_id = device_id
        self._callback = callback
        loop = self._loop or asyncio.get_running_loop()
        delay = self.delay_s()
        self._handle = loop.call_later(delay, self._fire, device_id, self._generation)
        logger.debug("Rollover for %s armed in %.1fs (generation %d)", device_id, delay, self._generation)
        return self._generation

    def disarm(self) -> None:
        self._cancel_handle()
        self._generation += 1
        self._device_id = None
        self._callback = None

    def _cancel_handle(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, device_id: str, generation: int) -> None:
        if generation != self._generation or device_id != self._device_id:
            logger.debug("Ignoring stale rollover for %s (generation %d)", device_id, generation)
            return
        self._handle = None
        callback = self._callback
        try:
            if callback is not None:
                callback(device_id)
        except Exception:
            logger.exception("Rollover callback failed for %s", device_id)
        finally:
            if generation == self._generation and callback is not None:
                self.arm(device_id, callback)


# -----------------------------------------------------------------------
# Ledger
# -----------------------------------------------------------------------


class DailyCounterLedger:
    """Day-scoped production counter and log, one per device.

    Parameters:
        store: Persistence backend.
        clock: Returns the current naive local time.
        max_log_entries: Bound on the in-memory and persisted log.
        rollover_grace_s: Delay after midnight before the timer fires.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        clock: Clock = local_now,
        max_log_entries: int = 100,
        rollover_grace_s: float = 5.0,
    ) -> None:
        self._store = store
        self._clock = clock
        self._max_log_entries = max_log_entries
        self._states: dict[str, LedgerState] = {}
        self._timer = RolloverTimer(clock=clock, grace_s=rollover_grace_s)

    @property
    def rollover_timer(self) -> RolloverTimer:
        return self._timer

    def is_loaded(self, device_id: str) -> bool:
        return device_id in self._states

    def state(self, device_id: str) -> LedgerState:
        """Return a copy of the device's state, loading it on first use."""
        return self._ensure(device_id).model_copy(deep=True)

    def count(self, device_id: str) -> int:
        return self._ensure(device_id).count

    def log(self, device_id: str) -> list[ProductionLogEntry]:
        return list(self._ensure(device_id).log)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def load(self, device_id: str) -> LedgerState:
        """(Re)load persisted state for *device_id*.

        A counter stored for an earlier day is archived under its own date
        and today's count starts at 0.  Log entries outside today's window
        are dropped.
        """
        today = self._clock().date()
        counter = self._read_counter(device_id)
        log_record = self._read_json(device_key(device_id, LOG))
        entries, log_day, log_count = self._parse_log(device_id, log_record)

        dirty = False
        if counter is not None and counter.date == today:
            count = counter.count
            if log_record is not None:
                logged_today = log_count if log_day == today else 0
                if logged_today != count:
                    logger.warning(
                        "Ledger for %s: counter=%d but log=%d - re-deriving count from log",
                        device_id,
                        count,
                        logged_today,
                    )
                    count = logged_today
                    dirty = True
        elif counter is not None:
            if counter.date < today:
                self._archive(device_id, counter)
            logger.info("Ledger for %s was stale (%s) - starting %s at 0", device_id, counter.date, today)
            count = 0
            dirty = True
        else:
            count = log_count if log_day == today else 0

        todays = [e for e in entries if in_day(e.timestamp, today)]
        if len(todays) != len(entries):
            dirty = True

        state = LedgerState(day=today, count=count, log=todays[: self._max_log_entries])
        self._states[device_id] = state
        if dirty:
            self._persist(device_id, state)
        logger.debug("Loaded ledger for %s: %d units, %d log entries", device_id, state.count, len(state.log))
        return state.model_copy(deep=True)

    def load_yesterday(self, device_id: str) -> DailyCounter | None:
        """Read yesterday's final counter.  Never touches today's state."""
        yesterday = self._clock().date() - timedelta(days=1)
        archived = self._read_json(device_key(device_id, COUNTER, yesterday.isoformat()))
        if archived is not None:
            return self._to_counter(device_id, archived)
        # not archived yet: the live counter may still be yesterday's
        live = self._read_counter(device_id)
        if live is not None and live.date == yesterday:
            return live
        return None

    def record_unit(
        self,
        device_id: str,
        tag_id: str | None,
        product_name: str | None,
        timestamp: Any = None,
    ) -> ProductionLogEntry | None:
        """Count one unit and prepend it to the log.

        Returns the new log entry, or ``None`` when the timestamp belongs to
        a day before the ledger's current day (the event is dropped).
        """
        ts = to_local(timestamp, self._clock)
        state = self._ensure(device_id)
        entry = ProductionLogEntry(tag_id=tag_id, product_name=product_name, timestamp=ts)
        day = ts.date()

        if day == state.day:
            state.count += 1
            state.log.insert(0, entry)
            del state.log[self._max_log_entries :]
        elif day > state.day:
            self._archive(device_id, DailyCounter(date=state.day, count=state.count))
            logger.info("Ledger for %s rolled over %s -> %s on unit event", device_id, state.day, day)
            state = LedgerState(day=day, count=1, log=[entry])
            self._states[device_id] = state
        else:
            logger.warning("Dropping unit %s for %s: %s is before ledger day %s", entry.tag_id, device_id, ts, state.day)
            return None

        self._persist(device_id, state)
        return entry

    def roll_over(self, device_id: str) -> LedgerState:
        """Start a fresh day if the clock has passed the ledger's day."""
        today = self._clock().date()
        state = self._ensure(device_id)
        if state.day < today:
            self._archive(device_id, DailyCounter(date=state.day, count=state.count))
            state = LedgerState(day=today)
            self._states[device_id] = state
            self._persist(device_id, state)
            logger.info("Ledger for %s rolled over to %s", device_id, today)
        return state.model_copy(deep=True)

    def reset(self, device_id: str) -> None:
        state = LedgerState(day=self._clock().date())
        self._states[device_id] = state
        self._persist(device_id, state)

    def sync_count(self, device_id: str, backend_count: int) -> int:
        """Adopt a backend-reported count unless it would lose local units."""
        state = self._ensure(device_id)
        if backend_count >= state.count or state.count == 0:
            state.count = max(0, int(backend_count))
            self._persist(device_id, state)
        return state.count

    def trend_vs_yesterday(self, device_id: str) -> float | None:
        """Percent change of today's count against yesterday's."""
        yesterday = self.load_yesterday(device_id)
        if yesterday is None or yesterday.count == 0:
            return None
        return round((self.count(device_id) - yesterday.count) / yesterday.count * 100, 1)

    # ------------------------------------------------------------------
    # Rollover scheduling
    # ------------------------------------------------------------------

    def schedule_rollover(self, device_id: str, callback: Callable[[str], Any] | None = None) -> int:
        """Arm the midnight timer for *device_id*.  Returns its generation.

        The timer calls :meth:`roll_over` unless *callback* is given; a
        caller that serialises work per device passes a callback that
        queues the rollover instead.
        """
        return self._timer.arm(device_id, callback or self.roll_over)

    def cancel_rollover(self) -> None:
        self._timer.disarm()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _ensure(self, device_id: str) -> LedgerState:
        state = self._states.get(device_id)
        if state is None:
            self.load(device_id)
            state = self._states[device_id]
        return state

    def _persist(self, device_id: str, state: LedgerState) -> bool:
        day = state.day.isoformat()
        try:
            self._store.set_json(device_key(device_id, COUNTER), {"date": day, "count": state.count})
            self._store.set_json(
                device_key(device_id, LOG),
                {"date": day, "count": state.count, "entries": [e.to_dict() for e in state.log]},
            )
        except PersistenceError as exc:
            logger.error("Failed to persist ledger for %s (in-memory state kept): %s", device_id, exc)
            return False
        return True

    def _archive(self, device_id: str, counter: DailyCounter) -> None:
        try:
            self._store.set_json(
                device_key(device_id, COUNTER, counter.date.isoformat()),
                counter.model_dump(mode="json"),
            )
        except PersistenceError as exc:
            logger.error("Failed to archive %s counter for %s: %s", counter.date, device_id, exc)

    def _read_json(self, key: str) -> Any:
        try:
            return self._store.get_json(key)
        except PersistenceError as exc:
            logger.error("Ignoring unreadable ledger record: %s", exc)
            return None

    def _read_counter(self, device_id: str) -> DailyCounter | None:
        raw = self._read_json(device_key(device_id, COUNTER))
        if raw is None:
            return None
        return self._to_counter(device_id, raw)

    @staticmethod
    def _to_counter(device_id: str, raw: Any) -> DailyCounter | None:
        try:
            return DailyCounter.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Ignoring malformed counter for %s: %s", device_id, exc)
            return None

    @staticmethod
    def _parse_log(device_id: str, raw: Any) -> tuple[list[ProductionLogEntry], date | None, int]:
        if not isinstance(raw, dict):
            return [], None, 0
        entries: list[ProductionLogEntry] = []
        for item in raw.get("entries", []):
            try:
                entries.append(ProductionLogEntry.from_dict(item))
            except ValidationError:
                logger.warning("Skipping malformed log entry for %s: %r", device_id, item)
        try:
            log_day = date.fromisoformat(raw["date"]) if raw.get("date") else None
        except (TypeError, ValueError):
            log_day = None
        log_count = raw.get("count")
        if not isinstance(log_count, int) or log_count < 0:
            log_count = len(entries)
        return entries, log_day, log_count
