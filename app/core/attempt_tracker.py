"""
app/core/attempt_tracker.py — Per-identifier attempt counting with optional lockout
Guards the admin login (lockout tier) and public lead submissions (window only).
State lives in an injected AttemptStore; the in-memory store is the default.
"""
from __future__ import annotations

import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from loguru import logger

from app.core import logging as app_logging


# ──────────────────────────────────────────────────────────────────────────────
# Policy, record, decision
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AttemptPolicy:
    """Limits for one tracker. lockout_seconds of 0 or None disables lockout."""

    max_attempts: int
    window_seconds: float
    lockout_seconds: Optional[float] = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if self.lockout_seconds is not None and self.lockout_seconds < 0:
            raise ValueError("lockout_seconds must be >= 0")

    @property
    def has_lockout(self) -> bool:
        return bool(self.lockout_seconds)


@dataclass
class AttemptRecord:
    count: int
    window_reset_at: float
    locked_until: Optional[float] = None

    def is_locked(self, now: float) -> bool:
        return self.locked_until is not None and now < self.locked_until

    def is_expired(self, now: float) -> bool:
        """True once both the window and any lockout have passed."""
        if now <= self.window_reset_at:
            return False
        return self.locked_until is None or now > self.locked_until


@dataclass(frozen=True)
class AttemptDecision:
    allowed: bool
    remaining: int
    locked_until: Optional[float] = None
    # End of the current window; only reported on soft rejections
    window_reset_at: Optional[float] = field(default=None, compare=False)

    @property
    def is_locked(self) -> bool:
        return self.locked_until is not None

    def retry_after(self, now: Optional[float] = None) -> int:
        """Whole seconds until the identifier may retry (0 if allowed now)."""
        if self.allowed:
            return 0
        until = self.locked_until if self.locked_until is not None else self.window_reset_at
        if until is None:
            return 0
        if now is None:
            now = time.time()
        return max(0, math.ceil(until - now))


# ──────────────────────────────────────────────────────────────────────────────
# Stores
# ──────────────────────────────────────────────────────────────────────────────

class AttemptStore(ABC):
    """Keyed storage for attempt records. Not required to be thread-safe;
    the tracker serialises every access."""

    @abstractmethod
    def get(self, identifier: str) -> Optional[AttemptRecord]: ...

    @abstractmethod
    def set(self, identifier: str, record: AttemptRecord) -> None: ...

    @abstractmethod
    def delete(self, identifier: str) -> None: ...

    @abstractmethod
    def sweep(self, predicate: Callable[[AttemptRecord], bool]) -> int:
        """Delete every record matching predicate. Returns count deleted."""

    @abstractmethod
    def __len__(self) -> int: ...


class InMemoryAttemptStore(AttemptStore):
    """Process-local dict store. State is lost on restart."""

    def __init__(self) -> None:
        self._records: dict[str, AttemptRecord] = {}

    def get(self, identifier: str) -> Optional[AttemptRecord]:
        return self._records.get(identifier)

    def set(self, identifier: str, record: AttemptRecord) -> None:
        self._records[identifier] = record

    def delete(self, identifier: str) -> None:
        self._records.pop(identifier, None)

    def sweep(self, predicate: Callable[[AttemptRecord], bool]) -> int:
        stale = [key for key, record in self._records.items() if predicate(record)]
        for key in stale:
            del self._records[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._records)


# ──────────────────────────────────────────────────────────────────────────────
# Tracker
# ──────────────────────────────────────────────────────────────────────────────

class AttemptTracker:
    """Decides whether an identifier may act and records the attempt.

    Example:
        tracker = AttemptTracker("login", AttemptPolicy(5, 900, 1800))
        decision = tracker.check_and_record("alice@example.com:203.0.113.7")
        if not decision.allowed:
            # Rejected; decision.locked_until says for how long
    """

    def __init__(
        self,
        scope: str,
        policy: AttemptPolicy,
        store: Optional[AttemptStore] = None,
    ) -> None:
        self.scope = scope
        self.policy = policy
        self._store = store if store is not None else InMemoryAttemptStore()
        self._lock = threading.Lock()

    def check_and_record(
        self, identifier: str, now: Optional[float] = None
    ) -> AttemptDecision:
        """Check the identifier against the policy and count this attempt.

        Args:
            identifier: Opaque key (client IP, "email:ip", ...)
            now: Current epoch seconds (defaults to time.time(), injectable for testing)

        Returns:
            AttemptDecision. Never raises.
        """
        if now is None:
            now = time.time()
        policy = self.policy

        with self._lock:
            record = self._store.get(identifier)

            # Active lockout: reject without counting
            if record is not None and record.is_locked(now):
                decision = AttemptDecision(False, 0, record.locked_until)
                app_logging.log_attempt_rejected(self.scope, identifier, record.locked_until)
                return decision

            # New identifier, expired window, or a lockout that has run out
            if (
                record is None
                or now > record.window_reset_at
                or record.locked_until is not None
            ):
                self._store.set(
                    identifier,
                    AttemptRecord(count=1, window_reset_at=now + policy.window_seconds),
                )
                return AttemptDecision(True, policy.max_attempts - 1)

            if record.count >= policy.max_attempts:
                if not policy.has_lockout:
                    app_logging.log_attempt_rejected(self.scope, identifier, None)
                    return AttemptDecision(False, 0, window_reset_at=record.window_reset_at)
                record.locked_until = now + policy.lockout_seconds
                self._store.set(identifier, record)
                app_logging.log_lockout(self.scope, identifier, record.locked_until)
                return AttemptDecision(False, 0, record.locked_until)

            record.count += 1
            self._store.set(identifier, record)
            return AttemptDecision(True, policy.max_attempts - record.count)

    def reset_attempts(self, identifier: str) -> None:
        """Forget the identifier entirely, lockout included."""
        with self._lock:
            self._store.delete(identifier)

    def sweep(self, now: Optional[float] = None) -> int:
        """Evict records whose window and lockout have both expired."""
        if now is None:
            now = time.time()
        with self._lock:
            return self._store.sweep(lambda record: record.is_expired(now))

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


# ──────────────────────────────────────────────────────────────────────────────
# Background sweep
# Daemon thread started from the app lifespan and joined on shutdown.
# ──────────────────────────────────────────────────────────────────────────────

class AttemptSweeper:
    """Periodically evicts expired records from a set of trackers."""

    def __init__(
        self,
        trackers: Iterable[AttemptTracker],
        interval_seconds: float = 3600.0,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.trackers = list(trackers)
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self, now: Optional[float] = None) -> int:
        """Sweep every tracker once. Returns total records evicted."""
        total = 0
        for tracker in self.trackers:
            try:
                evicted = tracker.sweep(now)
            except Exception as exc:
                app_logging.log_error("attempt_tracker", "sweep", exc, {"scope": tracker.scope})
                continue
            total += evicted
            app_logging.log_sweep(tracker.scope, evicted, len(tracker))
        return total

    def _worker(self) -> None:
        # Event.wait doubles as an interruptible sleep
        while not self._stop_event.wait(self.interval_seconds):
            self.run_once()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._worker,
            daemon=True,
            name="attempt-tracker-sweeper",
        )
        self._thread.start()
        logger.info(
            f"Attempt sweeper started for {[t.scope for t in self.trackers]} "
            f"every {self.interval_seconds:.0f}s."
        )

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info("Attempt sweeper stopped.")
