"""Case stores for the escalation runtime.

``CaseStore`` keeps cases in memory with thread-safe access. ``FileCaseStore``
adds a JSON snapshot on every write so pending cases survive a restart; the
scheduler re-derives due times from the persisted ``last_escalated_at``.

The file store is meant for a single process. Snapshots are written
synchronously after each write, outside the case lock, so reads and other
compare-and-set calls never wait on disk I/O. The snapshot rewrites every
case, so deployments with many thousands of live cases or several replicas
need a database-backed store instead.
"""

import json
import logging
import os
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional, Union

from .state import CaseStatus, EscalationCase

logger = logging.getLogger(__name__)


class CaseStore:
    """In-memory store for escalation cases.

    ``compare_and_set`` is the only way to change a stored case, so every
    status change is guarded by the case's ``version``.
    """

    def __init__(self) -> None:
        """Initialize the case store."""
        self._cases: Dict[str, EscalationCase] = {}
        self._lock = Lock()

    def create(self, case: EscalationCase) -> EscalationCase:
        """Store a new case.

        Args:
            case: EscalationCase to store

        Returns:
            The stored EscalationCase

        Raises:
            ValueError: If a case with this id already exists
        """
        with self._lock:
            if case.id in self._cases:
                raise ValueError(f"Case with id {case.id} already exists")

            self._cases[case.id] = case

        self._persist()
        return case

    def get(self, case_id: str) -> Optional[EscalationCase]:
        """Retrieve a case by ID.

        Args:
            case_id: Case ID to look up

        Returns:
            EscalationCase if found, None otherwise
        """
        with self._lock:
            return self._cases.get(case_id)

    def compare_and_set(
        self, case_id: str, expected_version: int, updated: EscalationCase
    ) -> bool:
        """Replace a case only if its stored version matches.

        Args:
            case_id: ID of the case to replace
            expected_version: Version the caller read before computing ``updated``
            updated: New case value

        Returns:
            True if the write won, False if the case changed or does not exist
        """
        with self._lock:
            current = self._cases.get(case_id)
            if current is None or current.version != expected_version:
                return False

            self._cases[case_id] = updated

        self._persist()
        return True

    def list(
        self,
        status: Optional[CaseStatus] = None,
        limit: Optional[int] = None,
    ) -> List[EscalationCase]:
        """List cases with optional filtering.

        Args:
            status: Optional status filter
            limit: Optional limit on number of results

        Returns:
            Cases ordered by created_at descending (most recent first)
        """
        with self._lock:
            cases = list(self._cases.values())

        if status is not None:
            cases = [c for c in cases if c.status == status]

        cases.sort(key=lambda c: c.created_at, reverse=True)

        if limit is not None:
            cases = cases[:limit]

        return cases

    def pending(self) -> List[EscalationCase]:
        """Get all pending cases, oldest first.

        Returns:
            List of cases in the PENDING status
        """
        with self._lock:
            cases = [c for c in self._cases.values() if c.status == CaseStatus.PENDING]
        cases.sort(key=lambda c: c.created_at)
        return cases

    def count(self, status: Optional[CaseStatus] = None) -> int:
        """Count cases with optional filtering.

        Args:
            status: Optional status filter

        Returns:
            Count of cases matching the criteria
        """
        with self._lock:
            if status is None:
                return len(self._cases)

            return sum(1 for c in self._cases.values() if c.status == status)

    def clear(self) -> int:
        """Clear all cases from the store.

        Returns:
            Number of cases cleared
        """
        with self._lock:
            count = len(self._cases)
            self._cases.clear()

        self._persist()
        return count

    def _persist(self) -> None:
        """Hook called after every write, once the lock is released."""
        pass


class FileCaseStore(CaseStore):
    """Case store that snapshots to a JSON file after every write."""

    def __init__(self, path: Union[str, Path]) -> None:
        """Initialize the store and load any existing snapshot.

        Args:
            path: JSON file to read from and write to
        """
        super().__init__()
        self.path = Path(path)
        self._write_lock = Lock()
        self._generation = 0
        self._written_generation = 0
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return

        with open(self.path, "r", encoding="utf-8") as f:
            raw = json.load(f)

        for item in raw:
            case = EscalationCase.model_validate(item)
            self._cases[case.id] = case

        logger.info("Loaded %d escalation cases from %s", len(self._cases), self.path)

    def _persist(self) -> None:
        with self._lock:
            self._generation += 1
            generation = self._generation
            data = [case.model_dump(mode="json") for case in self._cases.values()]

        with self._write_lock:
            # A newer snapshot already reached the disk
            if generation < self._written_generation:
                return
            self._write(data)
            self._written_generation = generation

    def _write(self, data: List[dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")

        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f)

        # Atomic on POSIX and Windows
        os.replace(tmp_path, self.path)
