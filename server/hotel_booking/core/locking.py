"""Deterministic in-process locking for inventory days.

Keys are ``(room_type_id, date)`` tuples. A ``LockScope`` only ever acquires
keys in ascending order, so two operations over overlapping date ranges can
never wait on each other in a cycle. Row-level ``SELECT ... FOR UPDATE`` in
the ledger provides the same guarantee across processes on PostgreSQL.
"""

import asyncio
from collections.abc import Iterable
from datetime import date

LockKey = tuple[int, date]


class LockTimeoutError(Exception):
    """An inventory lock was not granted in time."""

    def __init__(self, key: LockKey, timeout: float):
        super().__init__(f"Timed out after {timeout}s waiting for inventory lock {key[0]}@{key[1].isoformat()}")
        self.key = key


class LockSetChangedError(Exception):
    """The work discovered it needs a key that sorts before one already held.

    Taking it now would break the global ordering, so the unit of work has to
    roll back and start over with the wider key set.
    """

    def __init__(self, missing: Iterable[LockKey]):
        self.missing = sorted(missing)
        super().__init__(f"Lock set must grow by {len(self.missing)} key(s); restart required")


class InventoryLockManager:
    """Registry of per-key asyncio locks shared by every session in a process.

    A key's lock lives only while some scope holds it or waits for it.
    """

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds
        self._locks: dict[LockKey, asyncio.Lock] = {}
        self._users: dict[LockKey, int] = {}

    @property
    def tracked_keys(self) -> int:
        return len(self._locks)

    def _checkout(self, key: LockKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: LockKey) -> None:
        self._users[key] -= 1
        if not self._users[key]:
            del self._users[key]
            del self._locks[key]

    def scope(self) -> "LockScope":
        return LockScope(self)

    def is_locked(self, key: LockKey) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()


class LockScope:
    """The set of keys held by one unit of work. Released all at once."""

    def __init__(self, manager: InventoryLockManager):
        self._manager = manager
        self._held: list[LockKey] = []

    @property
    def held(self) -> frozenset[LockKey]:
        return frozenset(self._held)

    def covers(self, keys: Iterable[LockKey]) -> bool:
        held = set(self._held)
        return all(key in held for key in keys)

    async def acquire(self, keys: Iterable[LockKey]) -> None:
        wanted = sorted(set(keys) - set(self._held))
        if not wanted:
            return

        if self._held and wanted[0] < self._held[-1]:
            raise LockSetChangedError(wanted)

        for key in wanted:
            lock = self._manager._checkout(key)
            acquired = False
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self._manager.timeout_seconds)
                acquired = True
            except asyncio.TimeoutError as e:
                raise LockTimeoutError(key, self._manager.timeout_seconds) from e
            finally:
                if not acquired:
                    self._manager._checkin(key)
            self._held.append(key)

    def release_all(self) -> None:
        while self._held:
            key = self._held.pop()
            self._manager._locks[key].release()
            self._manager._checkin(key)

    async def __aenter__(self) -> "LockScope":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release_all()
