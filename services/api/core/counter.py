# services/api/core/counter.py
"""
Sequence counter allocator.

Two ways to get a number:

* next(name)        – plain increment under the counters lock (used for ids
                      that are not tied to a record insert).
* reserve(name, …)  – async reservation for record creation. The number is only
                      persisted together with the record (JsonAdapter.insert_sequenced),
                      so a failed create never burns a number.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional

from adapters.base import DocumentStore
from core.errors import StorageUnavailable
from core.locks import NamedAsyncLocks

logger = logging.getLogger(__name__)


def format_document_number(prefix: str, value: int, width: int = 4) -> str:
    """PO + 7 -> PO0007 (never truncates values wider than `width`)."""
    return f"{prefix}{int(value):0{width}d}"


@dataclass
class Reservation:
    sequence: str
    value: int
    prefix: str
    width: int
    committed: bool = False

    @property
    def display(self) -> str:
        return format_document_number(self.prefix, self.value, self.width)


class CounterAllocator:
    def __init__(self, store: DocumentStore, *, width: int = 4, prefixes: Optional[Dict[str, str]] = None):
        self.store = store
        self.width = width
        # sequence name -> display prefix (defaults to the sequence name itself)
        self.prefixes = dict(prefixes or {})
        self._async_locks = NamedAsyncLocks()

    def prefix_for(self, sequence: str) -> str:
        return self.prefixes.get(sequence, sequence)

    def current(self, sequence: str) -> int:
        value = self.store.get_counter(sequence)
        if value < 0:
            raise StorageUnavailable(f"counter {sequence} holds a negative value ({value})")
        return value

    def next(self, sequence: str) -> int:
        """Increment and persist `sequence`, returning the new value (first call returns 1)."""
        with self.store.counters() as counters:
            value = int(counters.get(sequence, 0)) + 1
            counters[sequence] = value
        logger.info(f"Allocated {sequence}={value}")
        return value

    def allocate_id(self, sequence: str) -> str:
        return format_document_number(self.prefix_for(sequence), self.next(sequence), self.width)

    def peek(self, sequence: str, collection: Optional[str] = None) -> str:
        """Display number the next reservation would get. Consumes nothing."""
        return format_document_number(
            self.prefix_for(sequence), self._floor(sequence, collection) + 1, self.width
        )

    def _floor(self, sequence: str, collection: Optional[str]) -> int:
        current = self.current(sequence)
        if collection:
            # A crash between the record write and the counter write leaves the
            # counter behind the collection. Never hand out a number already stored.
            stored = self.store.max_sequence_value(collection, sequence)
            if stored > current:
                logger.warning(
                    f"Counter {sequence}={current} lags {collection} (max {stored}); catching up"
                )
                current = stored
        return current

    @asynccontextmanager
    async def reserve(self, sequence: str, collection: Optional[str] = None) -> AsyncIterator[Reservation]:
        """
        Reserve the next value of `sequence` for the duration of the block.

        Concurrent reservations of the same sequence queue up behind each other,
        so each one sees the previous commit. The caller commits with
        commit(reservation, collection, record); leaving the block without
        committing releases the value.
        """
        async with self._async_locks(sequence):
            reservation = Reservation(
                sequence=sequence,
                value=self._floor(sequence, collection) + 1,
                prefix=self.prefix_for(sequence),
                width=self.width,
            )
            try:
                yield reservation
            finally:
                if not reservation.committed:
                    logger.info(f"Reservation {reservation.display} released unused")

    def commit(self, reservation: Reservation, collection: str, record: dict) -> None:
        """Insert `record` and advance the counter to the reserved value in one step."""
        self.store.insert_sequenced(collection, record, reservation.sequence, reservation.value)
        reservation.committed = True
