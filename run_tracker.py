"""
Run Tracker

Owns workflow runs and publishes their progress.

start() validates a workflow, allocates a run record and schedules the walk
as a supervised asyncio task, returning the run id at once. Observers
subscribe per run and receive a full snapshot on every change; stream()
wraps that in an async iterator for SSE consumers.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, AsyncIterator, Callable, Optional

import engine_config
from browser_session import BrowserSession, SessionManager
from persistence import RunArchive
from workflow_engine import WorkflowWalker
from workflow_errors import RunNotFoundError
from workflow_loader import check_workflow
from workflow_models import LogEntry, Run, RunStatus, Workflow, now_ms

logger = logging.getLogger(__name__)

Subscriber = Callable[[Run], None]


def new_run_id() -> str:
    return f"exec_{now_ms()}_{uuid.uuid4().hex[:9]}"


class RunHandle:
    """
    One run: its live record, subscribers, task and browser session.

    Only the task driving the run mutates the record; everyone else gets
    snapshots.
    """

    def __init__(self, run: Run):
        self.run = run
        self.subscribers: list[Subscriber] = []
        self.task: Optional[asyncio.Task] = None
        self.session: Optional[BrowserSession] = None
        self.finished_at: Optional[float] = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def request_cancel(self) -> None:
        self._cancelled = True

    def deliver(self, callback: Subscriber, snapshot: Optional[Run] = None) -> None:
        try:
            callback(snapshot or self.run.snapshot())
        except Exception as e:
            logger.warning(f"Subscriber of run {self.run.id} failed: {e}")

    def publish(self) -> None:
        snapshot = self.run.snapshot()
        for callback in list(self.subscribers):
            self.deliver(callback, snapshot)

    # RunRecorder

    def node_entered(self, node_id: str) -> None:
        self.run.current_node_id = node_id
        self.publish()

    def node_succeeded(self, entry: LogEntry) -> None:
        self.run.completed_nodes.append(entry.node_id)
        self.run.logs.append(entry)
        self.publish()

    def node_failed(self, entry: LogEntry) -> None:
        self.run.logs.append(entry)
        self.publish()

    def finish(self, status: RunStatus, error: Optional[str] = None) -> bool:
        """Move into a terminal state. Returns False if the run had already finished."""
        if self.run.is_terminal:
            return False
        self.run.status = status
        self.run.error = error if status is RunStatus.FAILED else None
        self.run.end_time = now_ms()
        self.finished_at = time.monotonic()
        self.publish()
        return True


class RunTracker:
    """Registry of runs for one service instance."""

    def __init__(
        self,
        session_manager: Optional[SessionManager] = None,
        walker: Optional[WorkflowWalker] = None,
        archive: Optional[RunArchive] = None,
        retention_seconds: Optional[float] = engine_config.RUN_RETENTION_SECONDS,
        terminate_on_finish: bool = engine_config.TERMINATE_ON_FINISH,
    ):
        self.session_manager = session_manager or SessionManager()
        self.walker = walker or WorkflowWalker()
        self.archive = archive
        self.retention_seconds = retention_seconds
        self.terminate_on_finish = terminate_on_finish
        self._runs: dict[str, RunHandle] = {}

    def __contains__(self, run_id: str) -> bool:
        return run_id in self._runs

    def _handle(self, run_id: str) -> RunHandle:
        handle = self._runs.get(run_id)
        if handle is None:
            raise RunNotFoundError(run_id)
        return handle

    # --- Submission ---

    def start(self, workflow: Workflow, variables: Optional[dict[str, Any]] = None) -> str:
        """
        Accept a workflow and schedule its run. Must be called from a running event loop.

        Raises:
            InvalidWorkflowError: Empty graph or no start node
        """
        check_workflow(workflow)
        self.evict_expired()

        run = Run(id=new_run_id())
        handle = RunHandle(run)
        self._runs[run.id] = handle

        logger.info(
            f"Starting run {run.id}: {len(workflow.nodes)} nodes, {len(workflow.edges)} edges"
        )
        graph = workflow.model_copy(deep=True)
        handle.task = asyncio.get_running_loop().create_task(
            self._drive(handle, graph, dict(variables or {}))
        )
        handle.task.add_done_callback(lambda task: self._on_task_done(handle, task))
        return run.id

    async def _drive(self, handle: RunHandle, workflow: Workflow, variables: dict[str, Any]) -> None:
        run_id = handle.run.id
        try:
            session = await self.session_manager.create(workflow.browser_hint())
            session.variables.update(variables)
            handle.session = session
            await self.walker.run(workflow, session, handle)
        except asyncio.CancelledError:
            logger.info(f"Run {run_id} cancelled")
            handle.finish(RunStatus.FAILED, "Run cancelled")
        except Exception as e:
            logger.error(f"Run {run_id} failed: {e}")
            handle.finish(RunStatus.FAILED, str(e) or e.__class__.__name__)
        else:
            logger.info(f"Run {run_id} completed")
            handle.finish(RunStatus.COMPLETED)
        finally:
            self._archive(handle)
            if self.terminate_on_finish and handle.session is not None:
                await self.session_manager.terminate(handle.session)

    def _on_task_done(self, handle: RunHandle, task: asyncio.Task) -> None:
        # Covers a task cancelled before its body ever ran
        if not handle.run.is_terminal:
            handle.finish(RunStatus.FAILED, "Run cancelled")
            self._archive(handle)

    def _archive(self, handle: RunHandle) -> None:
        if self.archive is None or not handle.run.is_terminal:
            return
        try:
            self.archive.save(handle.run.snapshot())
        except Exception as e:
            logger.error(f"Could not archive run {handle.run.id}: {e}")

    # --- Queries ---

    def status(self, run_id: str) -> Run:
        """
        Snapshot of a run.

        Raises:
            RunNotFoundError: Unknown (or evicted and unarchived) run id
        """
        self.evict_expired()
        handle = self._runs.get(run_id)
        if handle is not None:
            return handle.run.snapshot()
        if self.archive is not None:
            archived = self.archive.load(run_id)
            if archived is not None:
                return archived
        raise RunNotFoundError(run_id)

    def runs(self) -> list[Run]:
        return [h.run.snapshot() for h in self._runs.values()]

    # --- Observers ---

    def subscribe(self, run_id: str, callback: Subscriber) -> None:
        """
        Register an observer. The current snapshot is delivered right away,
        so subscribing to a finished run still yields its terminal snapshot.
        """
        handle = self._runs.get(run_id)
        if handle is None:
            archived = self.archive.load(run_id) if self.archive is not None else None
            if archived is None:
                raise RunNotFoundError(run_id)
            callback(archived)
            return
        handle.subscribers.append(callback)
        handle.deliver(callback)

    def unsubscribe(self, run_id: str, callback: Subscriber) -> None:
        handle = self._runs.get(run_id)
        if handle is not None and callback in handle.subscribers:
            handle.subscribers.remove(callback)

    async def stream(self, run_id: str) -> AsyncIterator[Run]:
        """Yield snapshots until the run's terminal snapshot or until the consumer stops."""
        queue: asyncio.Queue[Run] = asyncio.Queue()
        callback = queue.put_nowait
        self.subscribe(run_id, callback)
        try:
            while True:
                snapshot = await queue.get()
                yield snapshot
                if snapshot.is_terminal:
                    break
        finally:
            self.unsubscribe(run_id, callback)

    # --- Control ---

    async def cancel(self, run_id: str) -> Run:
        """Best-effort cancellation: aborts the in-flight action and fails the run."""
        handle = self._handle(run_id)
        if not handle.run.is_terminal:
            handle.request_cancel()
            if handle.task is not None and not handle.task.done():
                handle.task.cancel()
                await asyncio.wait({handle.task})
        return handle.run.snapshot()

    async def terminate_session(self, run_id: str) -> bool:
        """Close the run's browser. Returns False when it has no open session."""
        handle = self._handle(run_id)
        if handle.session is None or handle.session.closed:
            return False
        await self.session_manager.terminate(handle.session)
        return True

    async def probe_current_url(
        self,
        workflow: Workflow,
        until_node_id: Optional[str] = None,
        variables: Optional[dict[str, Any]] = None,
    ) -> tuple[Run, Optional[str]]:
        """
        Run the workflow in a throwaway session up to ``until_node_id`` and
        report the URL of the first page. The session is always terminated.
        """
        check_workflow(workflow)
        handle = RunHandle(Run(id=new_run_id()))
        session = await self.session_manager.create(workflow.browser_hint())
        try:
            session.variables.update(variables or {})
            try:
                await self.walker.run(workflow, session, handle, until_node_id=until_node_id)
            except Exception as e:
                handle.finish(RunStatus.FAILED, str(e) or e.__class__.__name__)
            else:
                handle.finish(RunStatus.COMPLETED)
            current_url = session.pages[0].url if session.pages else None
        finally:
            await self.session_manager.terminate(session)
        return handle.run.snapshot(), current_url

    def evict_expired(self, now: Optional[float] = None) -> int:
        """Drop finished runs older than the retention window. Returns how many were dropped."""
        if not self.retention_seconds:
            return 0
        now = time.monotonic() if now is None else now
        expired = [
            run_id for run_id, handle in self._runs.items()
            if handle.finished_at is not None and now - handle.finished_at > self.retention_seconds
        ]
        for run_id in expired:
            handle = self._runs.pop(run_id)
            handle.subscribers.clear()
            logger.info(f"Evicted run {run_id}")
        return len(expired)

    async def shutdown(self) -> None:
        """Cancel running tasks and close every browser."""
        tasks = [h.task for h in self._runs.values() if h.task is not None and not h.task.done()]
        for handle in self._runs.values():
            handle.request_cancel()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.session_manager.close()
