import threading
from typing import Any, Dict, List, Optional

from loguru import logger

from .exceptions import ExecutionNotFoundError, PersistenceError
from .models import ExecutionCreate, ExecutionRecord, ExecutionStatus, utcnow

class ExecutionStore:
    """In-memory execution records keyed by id.

    Every update is a read-modify-write under one lock, so runners driving
    different executions can write concurrently. Records handed out are
    copies; callers never hold a live reference into the map.
    """

    def __init__(self):
        self._records: Dict[str, ExecutionRecord] = {}
        self._lock = threading.Lock()

    def create(self, request: Optional[ExecutionCreate] = None) -> ExecutionRecord:
        request = request or ExecutionCreate()
        record = ExecutionRecord(
            crewId=request.crewId,
            description=request.description,
            config=request.config,
        )
        with self._lock:
            self._records[record.id] = record
        logger.info(f"Created execution {record.id}")
        return record.model_copy(deep=True)

    def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        with self._lock:
            record = self._records.get(execution_id)
            return record.model_copy(deep=True) if record else None

    def list(self) -> List[ExecutionRecord]:
        with self._lock:
            return [record.model_copy(deep=True) for record in self._records.values()]

    def update(self, execution_id: str, **changes: Any) -> ExecutionRecord:
        """Apply field changes to a record and return the updated copy.

        ``completedAt`` is stamped the first time the status becomes
        completed and never again.
        """
        with self._lock:
            current = self._records.get(execution_id)
            if current is None:
                raise ExecutionNotFoundError(execution_id)

            unknown = set(changes) - set(ExecutionRecord.model_fields)
            if unknown:
                raise PersistenceError(f"Unknown execution fields: {sorted(unknown)}")

            data = current.model_dump()
            data.update(changes)
            try:
                updated = ExecutionRecord.model_validate(data)
            except ValueError as e:
                raise PersistenceError(f"Rejected update for execution {execution_id}: {e}") from e

            if updated.status == ExecutionStatus.COMPLETED and current.completedAt is None:
                updated.completedAt = utcnow()
            elif current.completedAt is not None:
                updated.completedAt = current.completedAt

            self._records[execution_id] = updated
            return updated.model_copy(deep=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
