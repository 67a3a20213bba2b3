"""FeedbackStore - accept/reject outcomes of past interpretations

INVARIANTS:
1. Bounded: at most `capacity` entries, oldest dropped first (FIFO)
2. Every mutation is persisted before record() returns
3. Thread-safe: one lock around every read-modify-persist sequence
4. Insertion order is preserved on disk and in memory

Storage: JSON array of
    {natural_command, interpreted_command, accepted, model_used, timestamp}
"""

import time
import logging
import threading
from collections import deque
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

from ..core.storage import read_json, write_json_atomic


DEFAULT_CAPACITY = 1000


@dataclass
class FeedbackEntry:
    """A single recorded outcome"""
    natural_command: str
    interpreted_command: str
    accepted: bool
    model_used: str
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FeedbackEntry':
        return cls(
            natural_command=str(data.get("natural_command", "")),
            interpreted_command=str(data.get("interpreted_command", "")),
            accepted=bool(data.get("accepted", False)),
            model_used=str(data.get("model_used", "")),
            timestamp=int(data.get("timestamp", 0)),
        )


class FeedbackStore:
    """Capacity-bounded, persisted feedback log"""

    def __init__(self, storage_file: Optional[Path] = None, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.storage_file = Path(storage_file) if storage_file else None
        self.capacity = capacity
        self._entries: deque = deque(maxlen=capacity)
        self._lock = threading.RLock()
        self._load()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def entries(self) -> List[FeedbackEntry]:
        with self._lock:
            return list(self._entries)

    def record(self, natural: str, interpreted: str, accepted: bool, model: str) -> FeedbackEntry:
        """Append an entry (evicting the oldest at capacity) and persist"""
        entry = FeedbackEntry(
            natural_command=natural,
            interpreted_command=interpreted,
            accepted=bool(accepted),
            model_used=model,
            timestamp=int(time.time()),
        )
        with self._lock:
            if len(self._entries) >= self.capacity:
                logging.warning("FeedbackStore: at capacity, oldest entry removed")
            self._entries.append(entry)
            self._persist()
        logging.info(f"Feedback recorded: model={model}, accepted={entry.accepted}")
        return entry

    def suggest(self, natural: str) -> Optional[str]:
        """Most recent accepted interpretation for the same text (case-insensitive)"""
        wanted = (natural or "").casefold()
        with self._lock:
            for entry in reversed(self._entries):
                if entry.accepted and entry.natural_command.casefold() == wanted:
                    return entry.interpreted_command
        return None

    def model_stats(self, model: str) -> Tuple[int, int]:
        """(accepted, rejected) counts for a model across the whole store"""
        accepted = rejected = 0
        with self._lock:
            for entry in self._entries:
                if entry.model_used != model:
                    continue
                if entry.accepted:
                    accepted += 1
                else:
                    rejected += 1
        return accepted, rejected

    # ------------------------------------------------------------------

    def _load(self):
        if self.storage_file is None or not self.storage_file.exists():
            return
        try:
            data = read_json(self.storage_file)
        except (OSError, ValueError) as e:
            logging.error(f"FeedbackStore: failed to load {self.storage_file}: {e}")
            return
        if not isinstance(data, list):
            logging.error(f"FeedbackStore: {self.storage_file} is not a JSON array, ignoring")
            return

        items = [item for item in data if isinstance(item, dict)]
        if len(items) > self.capacity:
            logging.warning(f"FeedbackStore: feedback truncated to {self.capacity} entries")
        with self._lock:
            # deque(maxlen) keeps the newest entries
            for item in items:
                try:
                    self._entries.append(FeedbackEntry.from_dict(item))
                except (TypeError, ValueError) as e:
                    logging.debug(f"FeedbackStore: skipping bad entry: {e}")
        logging.info(f"FeedbackStore: loaded {len(self._entries)} entries")

    def _persist(self):
        if self.storage_file is None:
            return
        try:
            write_json_atomic(self.storage_file, [e.to_dict() for e in self._entries])
        except OSError as e:
            logging.error(f"FeedbackStore: failed to persist {self.storage_file}: {e}")
