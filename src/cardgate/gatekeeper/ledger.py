"""Spend ledgers — append-only history of gatekeeper decisions.

:class:`SpendLedger` defines the protocol the policy evaluator reads from.
:class:`JsonFileLedger` persists an ordered JSON array on disk,
:class:`InMemoryLedger` keeps entries in a list (tests, embedding), and
:class:`NullLedger` is used when transaction logging is disabled, in which
case historical spend reads as zero and daily/monthly limits never trip.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, time
from pathlib import Path
from typing import Callable, Protocol, runtime_checkable

from pydantic import TypeAdapter, ValidationError

from cardgate.errors import LedgerError
from cardgate.gatekeeper.models import LedgerEntry
from cardgate.utils.fileio import atomic_write, file_lock

logger = logging.getLogger(__name__)

EntryPredicate = Callable[[LedgerEntry], bool]

_ENTRIES = TypeAdapter(list[LedgerEntry])


def approved_since(start: datetime) -> EntryPredicate:
    """Match approved entries timestamped at or after *start*."""

    def _predicate(entry: LedgerEntry) -> bool:
        return entry.approved and entry.timestamp >= start

    return _predicate


def start_of_day(now: datetime) -> datetime:
    """Local midnight of *now*'s day, carrying the UTC offset in force at midnight."""
    return datetime.combine(now.astimezone().date(), time()).astimezone()


def start_of_month(now: datetime) -> datetime:
    return datetime.combine(now.astimezone().date().replace(day=1), time()).astimezone()


@runtime_checkable
class SpendLedger(Protocol):
    """Append-only, insertion-ordered record of :class:`LedgerEntry`."""

    def append(self, entry: LedgerEntry) -> None:
        """Record *entry*; either fully visible to readers or not at all."""
        ...

    def entries(self) -> list[LedgerEntry]:
        """Return a snapshot of all entries in insertion order."""
        ...

    def aggregate(self, predicate: EntryPredicate) -> float:
        """Sum the payment amounts of entries matching *predicate*."""
        ...


class _BaseLedger:
    def entries(self) -> list[LedgerEntry]:
        raise NotImplementedError

    def aggregate(self, predicate: EntryPredicate) -> float:
        return sum(e.payment.amount for e in self.entries() if predicate(e))


class InMemoryLedger(_BaseLedger):
    """List-backed :class:`SpendLedger`."""

    def __init__(self, entries: list[LedgerEntry] | None = None) -> None:
        self._entries: list[LedgerEntry] = list(entries or [])
        self._lock = threading.Lock()

    def append(self, entry: LedgerEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(self) -> list[LedgerEntry]:
        with self._lock:
            return list(self._entries)


class JsonFileLedger(_BaseLedger):
    """JSON-array :class:`SpendLedger` stored at *path* with 0600 permissions.

    Appends are read-modify-write cycles under an in-process lock plus an
    advisory file lock, and the new array replaces the old one atomically.
    A file that cannot be parsed raises :class:`LedgerError` instead of being
    treated as empty, since an empty history would silently reset limits.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def append(self, entry: LedgerEntry) -> None:
        with self._lock:
            try:
                with file_lock(self._path):
                    current = self._read()
                    current.append(entry)
                    atomic_write(self._path, _ENTRIES.dump_json(current, indent=2))
            except OSError as exc:
                raise LedgerError(f"Cannot write {self._path}: {exc}") from exc
        logger.debug(
            "Ledger entry %s appended (approved=%s, by=%s)",
            entry.id,
            entry.approved,
            entry.approved_by,
        )

    def entries(self) -> list[LedgerEntry]:
        return self._read()

    def _read(self) -> list[LedgerEntry]:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise LedgerError(f"Cannot read {self._path}: {exc}") from exc
        if not raw.strip():
            return []
        try:
            return _ENTRIES.validate_json(raw)
        except ValidationError as exc:
            raise LedgerError(f"Transaction log {self._path} is corrupt: {exc}") from exc


class NullLedger(_BaseLedger):
    """Ledger used when logging is disabled: records nothing, sums to zero."""

    def append(self, entry: LedgerEntry) -> None:
        return None

    def entries(self) -> list[LedgerEntry]:
        return []
