"""
Background execution of index maintenance.

Triggering a merge or rebuild submits it to a small worker pool and returns a
handle right away. Outcomes are persisted as the task status record, which
Stats/Info exposes; the handle only serves callers in the same process.
"""

import logging
import uuid
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional

from files_index.adapters.storage import BaseObjectStore
from files_index.errors import MaintenanceLockHeld, MaintenanceTaskFailure, StoreAdapterError
from files_index.index.keys import now_ms
from files_index.index.lock import record_task_status
from files_index.index.merge import merge_operations_to_index
from files_index.index.models import IndexConfig, MaintenanceResult
from files_index.index.oplog import delete_all_operations
from files_index.index.rebuild import rebuild_index

logger = logging.getLogger(__name__)

REBUILD_ACTION = "rebuild"
MERGE_ACTION = "merge-operations"
DELETE_OPERATIONS_ACTION = "delete-operations"

MAINTENANCE_ACTIONS = (REBUILD_ACTION, MERGE_ACTION, DELETE_OPERATIONS_ACTION)

# Handles kept for lookups by task id
MAX_TRACKED_HANDLES = 100


@dataclass
class TaskHandle:
    task_id: str
    action: str
    submitted_at: int
    future: Future = field(repr=False)


def run_maintenance_action(store: BaseObjectStore, config: IndexConfig, action: str) -> MaintenanceResult:
    """Run one maintenance action synchronously."""
    if action == REBUILD_ACTION:
        return rebuild_index(store, config)
    if action == MERGE_ACTION:
        return merge_operations_to_index(store, config)
    if action == DELETE_OPERATIONS_ACTION:
        deleted = delete_all_operations(store, config.scan_page_size)
        return MaintenanceResult(task=action, status="completed", processed=deleted)
    raise ValueError(f"Unknown maintenance action: {action}. Choose from {list(MAINTENANCE_ACTIONS)}")


class MaintenanceRunner:
    """Worker pool that runs maintenance actions detached from the request."""

    def __init__(
        self,
        store: BaseObjectStore,
        config: IndexConfig,
        max_workers: int = 1,
        action_runner: Optional[Callable[[BaseObjectStore, IndexConfig, str], MaintenanceResult]] = None,
    ):
        self.store = store
        self.config = config
        self.action_runner = action_runner or run_maintenance_action
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="index-maintenance")
        self.handles: "OrderedDict[str, TaskHandle]" = OrderedDict()
        logger.info(f"MaintenanceRunner initialized with {max_workers} worker(s)")

    def submit(self, action: str) -> TaskHandle:
        if action not in MAINTENANCE_ACTIONS:
            raise ValueError(f"Unknown maintenance action: {action}. Choose from {list(MAINTENANCE_ACTIONS)}")

        task_id = uuid.uuid4().hex
        future = self.executor.submit(self._run, action, task_id)
        handle = TaskHandle(task_id=task_id, action=action, submitted_at=now_ms(), future=future)

        self.handles[task_id] = handle
        while len(self.handles) > MAX_TRACKED_HANDLES:
            self.handles.popitem(last=False)

        logger.info(f"Submitted {action} as task {task_id}")
        return handle

    def get(self, task_id: str) -> Optional[TaskHandle]:
        return self.handles.get(task_id)

    def _record(self, action: str, status: str, task_id: str, **details) -> None:
        """Persist a task status; a store fault here is logged, not raised over the task outcome."""
        try:
            record_task_status(self.store, action, status, taskId=task_id, **details)
        except StoreAdapterError as e:
            logger.error(f"Could not record status '{status}' of task {task_id} ({action}): {e}")

    def _run(self, action: str, task_id: str) -> MaintenanceResult:
        self._record(action, "running", task_id)
        try:
            result = self.action_runner(self.store, self.config, action)
        except MaintenanceLockHeld as e:
            logger.warning(f"Task {task_id} ({action}) skipped: {e}")
            self._record(action, "skipped", task_id, error=str(e))
            raise
        except (MaintenanceTaskFailure, StoreAdapterError) as e:
            logger.error(f"Task {task_id} ({action}) failed, previous snapshot stays current: {e}")
            self._record(action, "failed", task_id, error=str(e))
            raise
        except Exception as e:
            logger.exception(f"Task {task_id} ({action}) crashed, previous snapshot stays current: {e}")
            self._record(action, "failed", task_id, error=f"{type(e).__name__}: {e}")
            raise

        self._record(
            action,
            result.status,
            task_id,
            version=result.version,
            processed=result.processed,
            applied=result.applied,
            remaining=result.remaining,
            **result.details,
        )
        return result

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
