"""
JSON file storage adapter for the back office.

One UTF-8 JSON array per collection (data/<collection>.json) plus a single
counters map (data/counters.json). Every write replaces the whole file via
temp file + fsync + os.replace, and every named file has its own lock, so
concurrent requests in this process never interleave a read-modify-write.
"""
import json
import logging
import re
from contextlib import contextmanager
from pathlib import Path
from typing import List, Dict, Any, Iterator, Optional

from core.errors import StorageUnavailable, SequenceConflict
from core.fsutil import atomic_write_text
from core.locks import NamedLocks

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_\-]{0,63}$")
_COUNTERS_LOCK = "__counters__"


class JsonAdapter:
    """
    JSON file-based record store and counter store.

    Lock order is always collection first, then counters, so
    insert_sequenced and reset_sequence cannot deadlock each other.
    """

    def __init__(self, data_dir: str = "data", counters_file: str = "counters.json"):
        """
        Initialize the JSON adapter. Nothing touches the disk until the first write.

        Args:
            data_dir: Directory holding the collection files
            counters_file: File name of the sequence counters map (inside data_dir)
        """
        self.data_dir = Path(data_dir)
        self.counters_path = self.data_dir / counters_file
        self._locks = NamedLocks()

    # ---------- low level ----------

    def collection_path(self, name: str) -> Path:
        if not _NAME_RE.match(name or ""):
            raise ValueError(f"Invalid collection name: {name!r}")
        return self.data_dir / f"{name}.json"

    def _read_file(self, filepath: Path, default: Any) -> Any:
        """Read and parse a JSON file. A missing file yields `default`."""
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return default
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt JSON in {filepath}: {e}")
            raise StorageUnavailable(f"{filepath.name} is not valid JSON") from e
        except OSError as e:
            logger.error(f"Cannot read {filepath}: {e}")
            raise StorageUnavailable(f"cannot read {filepath.name}: {e}") from e

    def _write_file(self, filepath: Path, data: Any) -> None:
        """Write data to a JSON file atomically."""
        text = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        atomic_write_text(filepath, text + "\n")

    # ---------- collections ----------

    def load_collection(self, name: str) -> List[Dict[str, Any]]:
        path = self.collection_path(name)
        with self._locks(name):
            records = self._read_file(path, [])
        if not isinstance(records, list):
            raise StorageUnavailable(f"{path.name} does not contain a JSON array")
        return records

    def save_collection(self, name: str, records: List[Dict[str, Any]]) -> None:
        path = self.collection_path(name)
        with self._locks(name):
            self._write_file(path, list(records))

    @contextmanager
    def collection(self, name: str) -> Iterator[List[Dict[str, Any]]]:
        """
        Hold the collection lock, yield the loaded records, save them back
        when the block exits cleanly. On error nothing is written.
        """
        with self._locks(name):
            records = self.load_collection(name)
            yield records
            self.save_collection(name, records)

    def max_sequence_value(self, name: str, sequence: str) -> int:
        highest = 0
        for record in self.load_collection(name):
            if record.get("sequence") != sequence:
                continue
            try:
                highest = max(highest, int(record.get("sequence_value") or 0))
            except (TypeError, ValueError):
                continue
        return highest

    def insert_sequenced(
        self,
        name: str,
        record: Dict[str, Any],
        sequence: str,
        value: int,
    ) -> None:
        """
        Append `record` (numbered `value` in `sequence`) and advance the counter.

        The collection write is the commit point. If the process dies before the
        counter write, the counter lags and the next reservation catches up from
        the collection's highest sequence_value, so a number is never reused.
        """
        with self._locks(name), self._locks(_COUNTERS_LOCK):
            records = self.load_collection(name)
            counters = self.read_counters()

            if int(counters.get(sequence, 0)) >= value:
                raise SequenceConflict(
                    f"{sequence} already advanced to {counters.get(sequence)} (reserved {value})"
                )
            for existing in records:
                if existing.get("sequence") == sequence and existing.get("sequence_value") == value:
                    raise SequenceConflict(f"{sequence} value {value} already used")

            records.append(record)
            self.save_collection(name, records)

            counters[sequence] = value
            self._write_file(self.counters_path, counters)
        logger.info(f"✓ Inserted {sequence}#{value} into {name}")

    # ---------- counters ----------

    def read_counters(self) -> Dict[str, int]:
        with self._locks(_COUNTERS_LOCK):
            data = self._read_file(self.counters_path, {})
        if not isinstance(data, dict):
            raise StorageUnavailable(f"{self.counters_path.name} does not contain a JSON object")
        return data

    def get_counter(self, sequence: str) -> int:
        return int(self.read_counters().get(sequence, 0))

    @contextmanager
    def counters(self) -> Iterator[Dict[str, int]]:
        with self._locks(_COUNTERS_LOCK):
            counters = self.read_counters()
            yield counters
            self._write_file(self.counters_path, counters)

    def reset_sequence(self, sequence: str, value: int, collection: Optional[str] = None) -> int:
        """
        Set a counter to `value`. When `collection` is given its records are
        cleared in the same locked section. Returns the number of deleted records.
        """
        if value < 0:
            raise ValueError("Counter value must be >= 0")

        deleted = 0
        if collection is None:
            with self.counters() as counters:
                counters[sequence] = value
            return deleted

        with self._locks(collection), self._locks(_COUNTERS_LOCK):
            records = self.load_collection(collection)
            kept = [r for r in records if r.get("sequence") != sequence]
            deleted = len(records) - len(kept)
            self.save_collection(collection, kept)
            counters = self.read_counters()
            counters[sequence] = value
            self._write_file(self.counters_path, counters)
        logger.warning(f"Sequence {sequence} reset to {value}; {deleted} record(s) removed from {collection}")
        return deleted
