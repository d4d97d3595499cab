import json
import logging
import os
from pathlib import Path
from typing import Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..core.errors import JournalWriteError

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 30

R = TypeVar("R", bound=BaseModel)


class ResultJournal(Generic[R]):
    """Bounded, newest-first history of scan results backed by one JSON file.

    The whole array is rewritten on every append. A missing or unreadable
    file reads as an empty journal. No locking here: callers serialize
    appends for a category.
    """

    def __init__(self, path, model: Type[R], capacity: int = DEFAULT_CAPACITY) -> None:
        self.path = Path(path)
        self.model = model
        self.capacity = capacity

    def load(self) -> List[R]:
        """Return all stored results, newest first."""
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Error loading results from {self.path}: {e}")
            return []
        if not isinstance(raw, list):
            logger.error(f"Error loading results from {self.path}: expected a JSON array")
            return []

        results: List[R] = []
        for i, item in enumerate(raw):
            try:
                results.append(self.model.model_validate(item))
            except ValidationError as e:
                logger.error(f"Skipping invalid entry {i} in {self.path}: {e.error_count()} errors")
        return results[: self.capacity]

    def save(self, results: List[R]) -> None:
        payload = [r.model_dump(mode="json", by_alias=True) for r in results]
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise JournalWriteError(f"Error saving results to {self.path}: {e}") from e

    def append(self, result: R) -> List[R]:
        """Insert `result` at the head, evict beyond capacity, persist."""
        results = self.load()
        results.insert(0, result)
        del results[self.capacity:]
        self.save(results)
        return results

    def latest(self) -> Optional[R]:
        results = self.load()
        return results[0] if results else None

    def get(self, result_id) -> Optional[R]:
        """Linear lookup by id; ids are compared as strings so route params match."""
        wanted = str(result_id)
        for r in self.load():
            if str(r.id) == wanted:
                return r
        return None
