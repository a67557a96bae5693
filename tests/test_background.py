# tests/test_background.py

"""
Background Task Runner Tests - failure channel, shutdown and drain
"""

import asyncio

from assessment_engine.services.background import BackgroundTaskRunner
from assessment_engine.shutdown import is_shutting_down, set_shutdown


def run(coro):
    return asyncio.run(coro)


async def fail(message):
    raise RuntimeError(message)


class TestBackgroundTaskRunner:

    def test_successful_job(self, runner):
        done = []

        async def job():
            done.append(True)

        async def scenario():
            task = runner.submit("noop", job)
            assert task is not None
            assert runner.pending == 1
            await runner.drain()
            assert runner.pending == 0

        run(scenario())
        assert done == [True]
        assert runner.recent_failures() == []

    def test_failure_is_dead_lettered_with_context(self, runner):
        async def scenario():
            runner.submit("narrative_regeneration", lambda: fail("composer down"), subject_id="emp-1")
            await runner.drain()

        run(scenario())

        [letter] = runner.recent_failures()
        assert letter.job == "narrative_regeneration"
        assert letter.error == "composer down"
        assert letter.context == {"subject_id": "emp-1"}
        assert letter.failed_at is not None

    def test_dead_letters_are_bounded(self):
        runner = BackgroundTaskRunner(dead_letter_capacity=3)

        async def scenario():
            for i in range(5):
                runner.submit("job", lambda i=i: fail(f"error {i}"))
            await runner.drain()

        run(scenario())

        assert [d.error for d in runner.recent_failures()] == ["error 2", "error 3", "error 4"]
        assert [d.error for d in runner.recent_failures(limit=1)] == ["error 4"]

    def test_no_jobs_after_shutdown(self, runner):
        async def job():
            raise AssertionError("must not run")

        async def scenario():
            set_shutdown()
            return runner.submit("late", job)

        assert run(scenario()) is None
        assert is_shutting_down() is True
        assert runner.pending == 0

    def test_drain_timeout_cancels_stragglers(self, runner):
        async def scenario():
            runner.submit("slow", lambda: asyncio.sleep(10))
            await runner.drain(timeout=0.05)
            return runner.pending

        assert run(scenario()) == 0
        assert runner.recent_failures() == []

    def test_jobs_scheduled_by_jobs_are_drained(self, runner):
        done = []

        async def child():
            done.append("child")

        async def parent():
            runner.submit("child", child)
            done.append("parent")

        async def scenario():
            runner.submit("parent", parent)
            await runner.drain()

        run(scenario())
        assert done == ["parent", "child"]
