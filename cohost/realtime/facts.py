"""
Fact Store Module

Durable bot memory: an ordered list of short, unique fact strings kept in a
JSON file.

Every mutation re-reads the file, changes the list and rewrites the whole
file while holding one exclusive lock. Callers refer to facts by their
1-based number in the latest format() listing.

Known limitation: numbers come from a listing rendered before an LLM call.
If the list changes in between, a number may point at a different fact by
the time it is applied. Nothing here detects that.
"""

import json
import os
import threading
from pathlib import Path
from typing import Iterable, List, Optional, Union

from cohost.config import settings
from cohost.errors import PersistenceError, ValidationError
from cohost.logger import get_logger

logger = get_logger(__name__)

EMPTY_LISTING = "No facts"


class FactStore:
    """
    Deduplicated, append-only-by-default list of facts.

    Usage:
        store = FactStore("data/facts.json")
        store.add(["likes CS", "lives in Moscow"])
        store.remove_by_index([1])
        print(store.format())   # "1 - lives in Moscow\\n"
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self._path = Path(path) if path is not None else settings.storage.facts_path
        self._lock = threading.Lock()

        try:
            self._facts: List[str] = self._load()
        except PersistenceError as e:
            logger.warning(f"Error loading facts: {e}")
            self._facts = []

        logger.debug(f"Fact store ready: {self._path} ({len(self._facts)} facts)")

    def _load(self) -> List[str]:
        if not self._path.exists():
            return []

        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Failed to read facts file: {e}") from e

        if not raw.strip():
            return []

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Failed to decode facts: {e}") from e

        if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
            raise PersistenceError("Facts file must contain a JSON array of strings")
        return data

    def _save(self) -> None:
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(self._facts, f, ensure_ascii=False, indent=2)
                f.write("\n")
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise PersistenceError(f"Failed to save facts: {e}") from e

    def add(self, facts: Iterable[str]) -> List[str]:
        """
        Append facts that are not stored yet.

        Facts are trimmed; empty strings and exact duplicates (of stored
        facts or within the batch) are skipped. The file is written only if
        something was added.

        Returns:
            The facts actually added, in order

        Raises:
            PersistenceError: If the file cannot be read or written. On a
                write failure the in-memory list already holds the new facts.
        """
        candidates = [fact.strip() for fact in facts if isinstance(fact, str)]
        if not any(candidates):
            return []

        with self._lock:
            self._facts = self._load()
            existing = set(self._facts)
            added = []

            for fact in candidates:
                if not fact or fact in existing:
                    continue
                added.append(fact)
                existing.add(fact)

            if not added:
                return []

            self._facts.extend(added)
            self._save()

        logger.info(f"Added facts: {added} (total {len(self._facts)})")
        return added

    def remove_by_index(self, numbers: Iterable[int]) -> List[str]:
        """
        Remove facts by their 1-based listing numbers.

        All numbers are validated before anything is removed; one invalid
        number rejects the whole batch. Repeated numbers count once.

        Returns:
            The removed facts, highest number first

        Raises:
            ValidationError: If any number is out of range
            PersistenceError: If the file cannot be read or written
        """
        numbers = list(numbers)
        if not numbers:
            return []

        with self._lock:
            self._facts = self._load()
            total = len(self._facts)

            unique = set()
            for number in numbers:
                if isinstance(number, bool) or not isinstance(number, int) or not 1 <= number <= total:
                    raise ValidationError(
                        f"Invalid fact number {number!r}: out of range [1, {total}]"
                    )
                unique.add(number)

            removed = []
            # Highest first so earlier numbers keep pointing at the same facts
            for number in sorted(unique, reverse=True):
                removed.append(self._facts.pop(number - 1))

            self._save()

        logger.info(f"Removed facts: {removed} (remaining {len(self._facts)})")
        return removed

    def clear(self) -> None:
        """Forget every fact."""
        with self._lock:
            self._facts = []
            self._save()
        logger.info("Cleared all facts")

    def format(self) -> str:
        """Numbered listing in insertion order, ready to embed in a prompt."""
        with self._lock:
            if not self._facts:
                return EMPTY_LISTING
            return "".join(f"{i} - {fact}\n" for i, fact in enumerate(self._facts, start=1))

    @property
    def facts(self) -> List[str]:
        """Copy of the current facts."""
        with self._lock:
            return list(self._facts)

    @property
    def path(self) -> Path:
        return self._path

    def __len__(self) -> int:
        with self._lock:
            return len(self._facts)
