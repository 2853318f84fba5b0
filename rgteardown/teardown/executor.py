"""Stage execution with bounded parallelism."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from ..cloud.errors import CloudError, ErrorKind
from ..models.outcome import RemovalOutcome
from ..models.plan import RemovalTask, Stage
from .strategies import RemovalContext

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"


class StageExecutor:
    """Runs the tasks of one stage.

    Tasks inside a stage are independent, so they run up to the concurrency
    limit at a time. Every task reaches an outcome; nothing fails fast.

    Attributes:
        context: Removal context shared by the group's tasks
    """

    def __init__(self, context: RemovalContext) -> None:
        self.context = context

    def run_stage(
        self,
        stage: Stage,
        concurrency_limit: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[RemovalOutcome]:
        """Execute every task of a stage.

        Args:
            stage: Stage to execute
            concurrency_limit: Maximum tasks in flight
            cancel_event: When set, tasks that have not started are skipped

        Returns:
            One outcome per task, in task order
        """
        if stage.is_empty:
            return []
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")

        logger.debug(f"Stage {stage.name}: {len(stage.tasks)} task(s), up to {concurrency_limit} at a time")

        if concurrency_limit == 1 or len(stage.tasks) == 1:
            return [self._run_task(task, cancel_event) for task in stage.tasks]

        with ThreadPoolExecutor(max_workers=min(concurrency_limit, len(stage.tasks))) as executor:
            futures = [executor.submit(self._run_task, task, cancel_event) for task in stage.tasks]
            return [future.result() for future in futures]

    def _run_task(self, task: RemovalTask, cancel_event: Optional[threading.Event]) -> RemovalOutcome:
        if cancel_event is not None and cancel_event.is_set():
            return RemovalOutcome.skipped(task.resource_id, CANCELLED)

        try:
            outcome = task.strategy.remove(task.descriptor, self.context)
        except CloudError as e:
            logger.warning(f"Failed to remove {task.resource_id}: {e}")
            return RemovalOutcome.failed(task.resource_id, e.message, 1, task.strategy.name, e.kind)
        except Exception as e:
            logger.error(f"Unexpected error removing {task.resource_id}: {e}", exc_info=True)
            return RemovalOutcome.failed(
                task.resource_id, f"unexpected error: {e}", 0, task.strategy.name, ErrorKind.FATAL
            )

        outcome.validate()
        return outcome
