"""
Unit tests for run tracking, observers and run lifecycle.
"""

import asyncio
import tempfile
import unittest

from fakes import FakeSessionManager, chain
from persistence import JSONRunArchive
from run_tracker import RunTracker
from workflow_errors import InvalidWorkflowError, RunNotFoundError
from workflow_loader import parse_workflow
from workflow_models import RunStatus


ROUND_TRIP = chain(
    ("start", "start"),
    ("openTabsNode", "playwright-node", {"action": "open_tabs", "urls": ["https://example.org"]}),
    ("extractNode", "playwright-node", {"action": "extract_text", "selector": "title"}),
    ("end", "end"),
)


class TrackerTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.sessions = FakeSessionManager(texts={"title": "Example Domain"})
        self.tracker = RunTracker(session_manager=self.sessions, retention_seconds=None)

    async def asyncTearDown(self):
        await self.tracker.shutdown()

    async def finish(self, run_id, tracker=None):
        final = None
        async for snapshot in (tracker or self.tracker).stream(run_id):
            final = snapshot
        return final


class TestSubmission(TrackerTestCase):

    async def test_rejects_workflow_without_start(self):
        workflow = parse_workflow(chain(("a", "task"), ("e", "end")))
        with self.assertRaises(InvalidWorkflowError):
            self.tracker.start(workflow, {})
        self.assertEqual(self.tracker.runs(), [])

    async def test_rejects_empty_workflow(self):
        with self.assertRaises(InvalidWorkflowError):
            self.tracker.start(parse_workflow({"nodes": [], "edges": []}))

    async def test_start_returns_immediately(self):
        run_id = self.tracker.start(parse_workflow(ROUND_TRIP))
        self.assertTrue(run_id.startswith("exec_"))
        self.assertIs(self.tracker.status(run_id).status, RunStatus.RUNNING)

    async def test_unknown_run(self):
        with self.assertRaises(RunNotFoundError):
            self.tracker.status("exec_missing")
        with self.assertRaises(RunNotFoundError):
            self.tracker.subscribe("exec_missing", lambda run: None)


class TestRunOutcome(TrackerTestCase):

    async def test_round_trip_completes_every_visited_node_including_end(self):
        run_id = self.tracker.start(parse_workflow(ROUND_TRIP), {})
        final = await self.finish(run_id)

        self.assertIs(final.status, RunStatus.COMPLETED)
        self.assertIsNotNone(final.end_time)
        self.assertIsNone(final.error)
        self.assertEqual(final.completed_nodes, ["start", "openTabsNode", "extractNode", "end"])
        self.assertEqual(len(final.logs), 4)
        self.assertEqual([e.action for e in final.logs], ["start", "open_tabs", "extract_text", "end"])
        self.assertTrue(all(e.status == "success" for e in final.logs))
        self.assertEqual(final.logs[2].details["text"], "Example Domain")

    async def test_failed_node(self):
        workflow = parse_workflow(chain(
            ("s", "start"),
            ("click", "playwright-node", {"action": "click", "selector": "#go"}),
            ("e", "end"),
        ))
        final = await self.finish(self.tracker.start(workflow))

        self.assertIs(final.status, RunStatus.FAILED)
        self.assertIn("Page at index 0 not found", final.error)
        self.assertEqual(final.completed_nodes, ["s"])
        self.assertEqual(final.logs[-1].status, "error")
        self.assertEqual(final.logs[-1].message, final.error)
        # Browser stays open for inspection
        self.assertEqual(self.sessions.terminated, [])

    async def test_launch_failure_fails_the_run(self):
        tracker = RunTracker(session_manager=FakeSessionManager(fail_launch="Executable doesn't exist"))
        final = None
        async for snapshot in tracker.stream(tracker.start(parse_workflow(ROUND_TRIP))):
            final = snapshot
        self.assertIs(final.status, RunStatus.FAILED)
        self.assertIn("Executable", final.error)

    async def test_initial_variables_reach_session(self):
        workflow = parse_workflow(chain(
            ("s", "start"),
            ("open", "playwright-node", {"action": "open_tabs", "count": 1}),
            ("nav", "playwright-node", {"action": "navigate", "useCurrentUrl": True, "url": "https://declared.example"}),
        ))
        run_id = self.tracker.start(workflow, {"currentUrl_0": "https://given.example"})
        final = await self.finish(run_id)
        self.assertEqual(final.logs[-1].details["url"], "https://given.example")

    async def test_browser_hint_selects_engine(self):
        workflow = parse_workflow(chain(
            ("s", "start"),
            ("t", "task", {"browserType": "firefox"}),
        ))
        await self.finish(self.tracker.start(workflow))
        self.assertEqual(self.sessions.created[0].engine, "firefox")

    async def test_terminate_on_finish(self):
        tracker = RunTracker(session_manager=self.sessions, terminate_on_finish=True)
        await self.finish(tracker.start(parse_workflow(ROUND_TRIP)), tracker)
        await tracker.shutdown()
        self.assertEqual(len(self.sessions.terminated), 1)


class TestObservers(TrackerTestCase):

    async def test_subscribe_after_completion_gets_terminal_snapshot(self):
        run_id = self.tracker.start(parse_workflow(ROUND_TRIP))
        await self.finish(run_id)

        received = []
        self.tracker.subscribe(run_id, received.append)

        self.assertEqual(len(received), 1)
        self.assertIs(received[0].status, RunStatus.COMPLETED)

    async def test_updates_are_ordered_and_isolated(self):
        run_id = self.tracker.start(parse_workflow(ROUND_TRIP))
        received = []

        def broken(run):
            raise RuntimeError("observer bug")

        self.tracker.subscribe(run_id, broken)
        self.tracker.subscribe(run_id, received.append)
        await self.finish(run_id)

        self.assertIs(received[-1].status, RunStatus.COMPLETED)
        log_counts = [len(r.logs) for r in received]
        self.assertEqual(log_counts, sorted(log_counts))
        completed_counts = [len(r.completed_nodes) for r in received]
        self.assertEqual(completed_counts, sorted(completed_counts))
        self.assertEqual(sum(1 for r in received if r.is_terminal), 1)

    async def test_snapshots_are_copies(self):
        run_id = self.tracker.start(parse_workflow(ROUND_TRIP))
        received = []
        self.tracker.subscribe(run_id, received.append)
        await self.finish(run_id)

        received[-1].completed_nodes.append("tampered")
        self.assertNotIn("tampered", self.tracker.status(run_id).completed_nodes)

    async def test_unsubscribe(self):
        run_id = self.tracker.start(parse_workflow(ROUND_TRIP))
        received = []
        self.tracker.subscribe(run_id, received.append)
        self.tracker.unsubscribe(run_id, received.append)
        await self.finish(run_id)
        self.assertEqual(len(received), 1)

    async def test_concurrent_runs_do_not_interleave(self):
        slow = parse_workflow(chain(
            ("s", "start"),
            ("open", "playwright-node", {"action": "open_tabs", "urls": "https://slow.example"}),
            ("wait", "playwright-node", {"action": "wait", "milliseconds": 20}),
            ("e", "end"),
        ))
        fast = parse_workflow(chain(
            ("s2", "start"),
            ("open2", "playwright-node", {"action": "open_tabs", "urls": "https://fast.example"}),
            ("e2", "end"),
        ))
        first = self.tracker.start(slow)
        second = self.tracker.start(fast)

        slow_final, fast_final = await asyncio.gather(self.finish(first), self.finish(second))

        self.assertEqual([e.node_id for e in slow_final.logs], ["s", "open", "wait", "e"])
        self.assertEqual([e.node_id for e in fast_final.logs], ["s2", "open2", "e2"])
        self.assertEqual(len(self.sessions.created), 2)
        self.assertIsNot(self.sessions.created[0], self.sessions.created[1])


class TestControl(TrackerTestCase):

    async def test_cancel_running_run(self):
        workflow = parse_workflow(chain(
            ("s", "start"),
            ("open", "playwright-node", {"action": "open_tabs", "count": 1}),
            ("wait", "playwright-node", {"action": "wait", "milliseconds": 10000}),
            ("e", "end"),
        ))
        run_id = self.tracker.start(workflow)
        while self.tracker.status(run_id).current_node_id != "wait":
            await asyncio.sleep(0.01)

        final = await self.tracker.cancel(run_id)

        self.assertIs(final.status, RunStatus.FAILED)
        self.assertEqual(final.error, "Run cancelled")
        self.assertEqual(final.completed_nodes, ["s", "open"])
        self.assertEqual(final.logs[-1].message, "Run cancelled")

    async def test_cancel_run_of_nodes_without_browser_calls(self):
        nodes = [("s", "start")] + [(f"n{i}", "comment") for i in range(500)]
        run_id = self.tracker.start(parse_workflow(chain(*nodes)))
        await asyncio.sleep(0)

        final = await self.tracker.cancel(run_id)

        self.assertIs(final.status, RunStatus.FAILED)
        self.assertEqual(final.error, "Run cancelled")
        self.assertLess(len(final.completed_nodes), 501)

    async def test_cyclic_run_fails_without_blocking_other_runs(self):
        cyclic = parse_workflow(chain(
            ("s", "start"), ("a", "task"), ("b", "task"),
            edges=[
                {"sourceNodeId": "s", "targetNodeId": "a"},
                {"sourceNodeId": "a", "targetNodeId": "b"},
                {"sourceNodeId": "b", "targetNodeId": "a"},
            ],
        ))
        cyclic_id = self.tracker.start(cyclic)
        other_id = self.tracker.start(parse_workflow(ROUND_TRIP))

        cyclic_final, other_final = await asyncio.wait_for(
            asyncio.gather(self.finish(cyclic_id), self.finish(other_id)), timeout=5
        )

        self.assertIs(cyclic_final.status, RunStatus.FAILED)
        self.assertIn("loops back to node a", cyclic_final.error)
        self.assertEqual(cyclic_final.completed_nodes, ["s", "a", "b"])
        self.assertIs(other_final.status, RunStatus.COMPLETED)

    async def test_cancel_finished_run_is_noop(self):
        run_id = self.tracker.start(parse_workflow(ROUND_TRIP))
        await self.finish(run_id)
        final = await self.tracker.cancel(run_id)
        self.assertIs(final.status, RunStatus.COMPLETED)

    async def test_terminate_session(self):
        run_id = self.tracker.start(parse_workflow(ROUND_TRIP))
        await self.finish(run_id)

        self.assertTrue(await self.tracker.terminate_session(run_id))
        self.assertFalse(await self.tracker.terminate_session(run_id))
        self.assertEqual(len(self.sessions.terminated), 1)

    async def test_probe_current_url(self):
        workflow = parse_workflow(chain(
            ("s", "start"),
            ("nav", "playwright-node", {"action": "navigate", "url": "https://example.org/login"}),
            ("target", "playwright-node", {"action": "click", "selector": "#submit"}),
            ("e", "end"),
        ))
        run, url = await self.tracker.probe_current_url(workflow, until_node_id="target")

        self.assertIs(run.status, RunStatus.COMPLETED)
        self.assertEqual(url, "https://example.org/login")
        self.assertEqual(run.completed_nodes, ["s", "nav"])
        self.assertEqual(len(self.sessions.terminated), 1)
        self.assertEqual(self.tracker.runs(), [])


class TestRetention(unittest.IsolatedAsyncioTestCase):

    async def test_eviction_and_archive_fallback(self):
        with tempfile.TemporaryDirectory() as tmp:
            tracker = RunTracker(
                session_manager=FakeSessionManager(),
                archive=JSONRunArchive(tmp),
                retention_seconds=60,
            )
            run_id = tracker.start(parse_workflow(ROUND_TRIP))
            async for _ in tracker.stream(run_id):
                pass

            self.assertEqual(tracker.evict_expired(), 0)
            finished_at = tracker._runs[run_id].finished_at
            self.assertEqual(tracker.evict_expired(now=finished_at + 61), 1)
            self.assertNotIn(run_id, tracker)

            archived = tracker.status(run_id)
            self.assertIs(archived.status, RunStatus.COMPLETED)
            self.assertEqual(len(archived.logs), 4)

            received = []
            tracker.subscribe(run_id, received.append)
            self.assertIs(received[0].status, RunStatus.COMPLETED)
            await tracker.shutdown()

    async def test_evicted_without_archive_is_not_found(self):
        tracker = RunTracker(session_manager=FakeSessionManager(), retention_seconds=1)
        run_id = tracker.start(parse_workflow(ROUND_TRIP))
        async for _ in tracker.stream(run_id):
            pass
        tracker.evict_expired(now=tracker._runs[run_id].finished_at + 2)
        with self.assertRaises(RunNotFoundError):
            tracker.status(run_id)


if __name__ == '__main__':
    unittest.main()
