"""
Storage adapter interface for the back office.
Defines the contract the record services and the counter allocator rely on.
"""

from typing import Protocol, List, Dict, Any, ContextManager, Optional, runtime_checkable


class RecordStore(Protocol):
    """
    Whole-file collection store.

    load/save always move the complete collection; a save is atomic
    (readers see the old content or the new content, never a mix).
    """

    def load_collection(self, name: str) -> List[Dict[str, Any]]:
        """Return all records of a collection ([] when it was never written)."""
        ...

    def save_collection(self, name: str, records: List[Dict[str, Any]]) -> None:
        """Replace the whole collection atomically."""
        ...

    def collection(self, name: str) -> ContextManager[List[Dict[str, Any]]]:
        """
        Serialized load → mutate → save unit for one collection.
        The yielded list is saved back when the block exits without error.
        """
        ...

    def insert_sequenced(
        self,
        name: str,
        record: Dict[str, Any],
        sequence: str,
        value: int,
    ) -> None:
        """Append a record and advance `sequence` to `value` as one commit."""
        ...

    def max_sequence_value(self, name: str, sequence: str) -> int:
        """Highest sequence_value stored in the collection for `sequence` (0 if none)."""
        ...


class CounterStore(Protocol):
    """Durable map of sequence name -> last issued integer."""

    def read_counters(self) -> Dict[str, int]:
        ...

    def counters(self) -> ContextManager[Dict[str, int]]:
        """Serialized read → mutate → write unit for the counters file."""
        ...

    def get_counter(self, sequence: str) -> int:
        ...

    def reset_sequence(self, sequence: str, value: int, collection: Optional[str] = None) -> int:
        ...


@runtime_checkable
class DocumentStore(RecordStore, CounterStore, Protocol):
    """Collections and counters behind one set of locks (insert_sequenced spans both)."""
