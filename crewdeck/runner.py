import asyncio
from typing import Dict, List, Optional

from loguru import logger

from .broadcaster import EventBroadcaster
from .config import RunnerSettings
from .exceptions import ExecutionAlreadyStartedError, ExecutionNotFoundError, PersistenceError
from .models import (
    ExecutionCompletedEvent, ExecutionMetrics, ExecutionRecord, ExecutionStatus,
    ExecutionStoppedEvent, ExecutionUpdateEvent, utcnow
)
from .store import ExecutionStore

def compute_metrics(settings: RunnerSettings, index: int) -> ExecutionMetrics:
    """Metrics reported at zero-based step ``index``; linear in the index"""
    return ExecutionMetrics(
        tokensUsed=settings.base_tokens + index * settings.tokens_per_step,
        apiCalls=settings.base_api_calls + index * settings.api_calls_per_step,
        estimatedCost=round(settings.base_cost + index * settings.cost_per_step, 2),
        duration=index * settings.seconds_per_step,
    )

def progress_percent(step_number: int, total_steps: int) -> int:
    """Rounded percentage of the script done after ``step_number`` steps (half up)"""
    return int(step_number * 100 / total_steps + 0.5)

class ExecutionRunner:
    """Drives executions through the step script, one asyncio task per id.

    A tick persists through the store and then publishes, with no await in
    between, so cancellation can only land on the sleep between ticks. A
    stop issued before the first tick therefore produces no update event.
    """

    def __init__(self, store: ExecutionStore, broadcaster: EventBroadcaster,
                 settings: Optional[RunnerSettings] = None):
        self.store = store
        self.broadcaster = broadcaster
        self.settings = settings or RunnerSettings()
        self._tasks: Dict[str, asyncio.Task] = {}

    def is_active(self, execution_id: str) -> bool:
        task = self._tasks.get(execution_id)
        return task is not None and not task.done()

    def active_executions(self) -> List[str]:
        return [execution_id for execution_id in self._tasks if self.is_active(execution_id)]

    def start(self, execution_id: str) -> asyncio.Task:
        """Bind a runner task to an execution; must be called from the event loop"""
        record = self.store.get(execution_id)
        if record is None:
            raise ExecutionNotFoundError(execution_id)
        if self.is_active(execution_id):
            raise ExecutionAlreadyStartedError(execution_id)
        if record.status.is_terminal:
            raise ExecutionAlreadyStartedError(execution_id, f"execution is {record.status.value}")

        task = asyncio.create_task(self._run(execution_id), name=f"execution-{execution_id}")
        self._tasks[execution_id] = task
        task.add_done_callback(lambda t: self._forget(execution_id, t))
        logger.info(f"Started runner for execution {execution_id} ({len(self.settings.steps)} steps)")
        return task

    def stop(self, execution_id: str) -> ExecutionRecord:
        """Cancel an execution's runner and mark it failed.

        Stopping a finished execution changes nothing and emits nothing.
        """
        record = self.store.get(execution_id)
        if record is None:
            raise ExecutionNotFoundError(execution_id)
        if record.status.is_terminal:
            logger.debug(f"Execution {execution_id} already {record.status.value}, ignoring stop")
            return record

        task = self._tasks.pop(execution_id, None)
        if task is not None and not task.done():
            task.cancel()

        record = self.store.update(execution_id, status=ExecutionStatus.FAILED)
        self.broadcaster.publish(ExecutionStoppedEvent(
            executionId=execution_id,
            message=self.settings.stopped_message,
        ))
        logger.info(f"Execution {execution_id} stopped by user")
        return record

    async def shutdown(self) -> int:
        """Cancel every live runner, leaving record status untouched"""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        if tasks:
            logger.info(f"Cancelled {len(tasks)} running executions")
        return len(tasks)

    def _forget(self, execution_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(execution_id) is task:
            del self._tasks[execution_id]

    async def _run(self, execution_id: str) -> None:
        steps = self.settings.steps
        index = 0
        try:
            while True:
                await asyncio.sleep(self.settings.interval)

                record = self.store.get(execution_id)
                if record is None:
                    logger.error(f"Execution {execution_id} disappeared from the store, stopping runner")
                    return
                if record.status.is_terminal:
                    logger.debug(f"Execution {execution_id} is {record.status.value}, stopping runner")
                    return

                try:
                    if index < len(steps):
                        self._tick(execution_id, index)
                        index += 1
                    else:
                        self._complete(execution_id)
                        return
                except PersistenceError as e:
                    # index stays put; the same step is retried next tick
                    logger.warning(f"Execution {execution_id}: persist failed at step {index + 1}, retrying: {e}")
                except ExecutionNotFoundError:
                    logger.error(f"Execution {execution_id} disappeared from the store, stopping runner")
                    return
        except asyncio.CancelledError:
            logger.debug(f"Runner for execution {execution_id} cancelled at step {index}")
            raise

    def _tick(self, execution_id: str, index: int) -> None:
        step = self.settings.steps[index]
        metrics = compute_metrics(self.settings, index)

        self.store.update(execution_id, output=step, **metrics.model_dump())

        self.broadcaster.publish(ExecutionUpdateEvent(
            executionId=execution_id,
            step=step,
            timestamp=utcnow().isoformat(),
            progress=progress_percent(index + 1, len(self.settings.steps)),
            metrics=metrics,
        ))
        logger.debug(f"Execution {execution_id}: step {index + 1}/{len(self.settings.steps)}")

    def _complete(self, execution_id: str) -> None:
        self.store.update(execution_id, status=ExecutionStatus.COMPLETED)
        self.broadcaster.publish(ExecutionCompletedEvent(
            executionId=execution_id,
            message=self.settings.completed_message,
        ))
        logger.info(f"Execution {execution_id} completed")
