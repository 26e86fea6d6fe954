import unittest

from pdf_relay.core.models import JobStatus, TransformRequest
from pdf_relay.workers.registry import JobRegistry
from pdf_relay.workers.scheduler import DeadlineScheduler

from tests.fakes import ManualClock


class TestJobRegistry(unittest.TestCase):
    def setUp(self):
        self.clock = ManualClock()
        self.scheduler = DeadlineScheduler(clock=self.clock)
        self.registry = JobRegistry(self.scheduler, clock=self.clock)
        self.job_id = self.registry.create(TransformRequest(source_ref="068000000000001"))

    def test_create_starts_queued(self):
        job = self.registry.get(self.job_id)
        self.assertEqual(job.status, JobStatus.QUEUED)
        self.assertEqual(job.progress, 0)
        self.assertEqual(job.params.source_ref, "068000000000001")
        self.assertIsNone(job.completed_at)
        self.assertEqual(len(self.job_id), 16)

    def test_ids_are_unique(self):
        ids = {self.registry.create(TransformRequest(source_ref="x")) for _ in range(50)}
        self.assertEqual(len(ids), 50)

    def test_progress_never_decreases_and_stays_below_100(self):
        self.registry.update(self.job_id, status=JobStatus.PROCESSING, progress=40)
        self.registry.update(self.job_id, progress=20, message="late tick")
        self.assertEqual(self.registry.get(self.job_id).progress, 40)

        self.registry.update(self.job_id, progress=150)
        self.assertEqual(self.registry.get(self.job_id).progress, 99)

    def test_completion_sets_result_and_timestamp(self):
        self.clock.advance(12)
        self.assertTrue(
            self.registry.update(self.job_id, status=JobStatus.COMPLETED, result={"destinationHandle": "abc"})
        )
        job = self.registry.get(self.job_id)
        self.assertEqual(job.progress, 100)
        self.assertEqual(job.completed_at, self.clock.now)
        self.assertEqual(job.result, {"destinationHandle": "abc"})
        self.assertIsNone(job.error)

    def test_terminal_job_ignores_further_updates(self):
        self.registry.update(self.job_id, status=JobStatus.FAILED, error="boom")
        self.assertFalse(self.registry.update(self.job_id, status=JobStatus.PROCESSING, progress=50))

        job = self.registry.get(self.job_id)
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.error, "boom")
        self.assertEqual(job.progress, 0)

    def test_error_requires_failed_status(self):
        with self.assertRaises(ValueError):
            self.registry.update(self.job_id, error="boom")
        with self.assertRaises(ValueError):
            self.registry.update(self.job_id, status=JobStatus.PROCESSING, result={"a": 1})

    def test_unknown_fields_are_rejected(self):
        with self.assertRaises(ValueError):
            self.registry.update(self.job_id, params=None)

    def test_update_of_unknown_job_is_a_noop(self):
        self.assertFalse(self.registry.update("missing", progress=10))

    def test_get_returns_snapshot(self):
        self.registry.update(self.job_id, status=JobStatus.COMPLETED, result={"title": "a"})
        snapshot = self.registry.get(self.job_id)
        snapshot.result["title"] = "changed"
        snapshot.progress = 3
        fresh = self.registry.get(self.job_id)
        self.assertEqual(fresh.result["title"], "a")
        self.assertEqual(fresh.progress, 100)

    def test_sweep_removes_job_only_after_delay(self):
        self.registry.update(self.job_id, status=JobStatus.COMPLETED, result={})
        self.registry.sweep(self.job_id, after=3600)

        self.clock.advance(3599)
        self.scheduler.run_due()
        self.assertIsNotNone(self.registry.get(self.job_id))

        self.clock.advance(1)
        self.scheduler.run_due()
        self.assertIsNone(self.registry.get(self.job_id))
        self.assertEqual(len(self.registry), 0)

    def test_sweep_never_removes_running_job(self):
        self.registry.update(self.job_id, status=JobStatus.DOWNLOADING, progress=10)
        self.registry.sweep(self.job_id, after=0)
        self.scheduler.run_due()
        self.assertIsNotNone(self.registry.get(self.job_id))

    def test_stats_counts_by_status(self):
        other = self.registry.create(TransformRequest(source_ref="y"))
        self.registry.update(other, status=JobStatus.FAILED, error="x")
        stats = self.registry.stats()
        self.assertEqual(stats["queued"], 1)
        self.assertEqual(stats["failed"], 1)
        self.assertEqual(stats["completed"], 0)

    def test_to_dict_uses_iso_timestamps(self):
        self.registry.update(self.job_id, status=JobStatus.COMPLETED, result={"x": 1})
        data = self.registry.get(self.job_id).to_dict()
        self.assertEqual(data["status"], "completed")
        self.assertTrue(data["createdAt"].endswith("Z"))
        self.assertTrue(data["completedAt"].endswith("Z"))
        self.assertEqual(data["result"], {"x": 1})
        self.assertNotIn("error", data)


class TestDeadlineScheduler(unittest.TestCase):
    def setUp(self):
        self.clock = ManualClock()
        self.scheduler = DeadlineScheduler(clock=self.clock)

    def test_runs_due_tasks_in_deadline_order(self):
        fired = []
        self.scheduler.schedule(30, lambda: fired.append("late"))
        self.scheduler.schedule(10, lambda: fired.append("early"))
        self.scheduler.schedule(100, lambda: fired.append("never"))

        self.clock.advance(30)
        self.assertEqual(self.scheduler.run_due(), 2)
        self.assertEqual(fired, ["early", "late"])
        self.assertEqual(self.scheduler.pending(), 1)

    def test_failing_callback_does_not_block_others(self):
        fired = []

        def _boom():
            raise RuntimeError("boom")

        self.scheduler.schedule(1, _boom)
        self.scheduler.schedule(2, lambda: fired.append("ok"))
        self.clock.advance(5)
        self.assertEqual(self.scheduler.run_due(), 1)
        self.assertEqual(fired, ["ok"])

    def test_cancelled_task_does_not_run(self):
        fired = []
        task = self.scheduler.schedule(1, lambda: fired.append("x"))
        self.scheduler.cancel(task)
        self.assertEqual(self.scheduler.pending(), 0)
        self.clock.advance(2)
        self.scheduler.run_due()
        self.assertEqual(fired, [])


if __name__ == "__main__":
    unittest.main()
