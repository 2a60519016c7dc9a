import unittest

from workflow_dispatcher.actions import MonitorPolicy
from workflow_dispatcher.config import Settings
from workflow_dispatcher.database import ConnectionState, build_database_url
from workflow_dispatcher.models import RunConclusion, RunStatus, map_conclusion, map_status


class TestDatabaseUrl(unittest.TestCase):
    def test_unconfigured_database_disables_tracking(self):
        settings = Settings(DATABASE_URL=None, DB_NAME=None)

        self.assertFalse(settings.database_configured)
        self.assertIsNone(build_database_url(settings))

    def test_discrete_fields_build_asyncpg_url(self):
        settings = Settings(
            DATABASE_URL=None,
            DB_HOST="db.internal",
            DB_PORT=6432,
            DB_NAME="workflows",
            DB_USER="dispatcher",
            DB_PASSWORD="pw",
        )

        url = build_database_url(settings)

        self.assertEqual(url.drivername, "postgresql+asyncpg")
        self.assertEqual(url.host, "db.internal")
        self.assertEqual(url.port, 6432)
        self.assertEqual(url.database, "workflows")

    def test_plain_postgres_url_gets_async_driver(self):
        url = build_database_url(Settings(DATABASE_URL="postgresql://u:p@localhost/runs"))

        self.assertEqual(url.drivername, "postgresql+asyncpg")
        self.assertEqual(url.database, "runs")

    def test_monitor_policy_from_settings(self):
        policy = MonitorPolicy.from_settings(
            Settings(MONITOR_POLL_INTERVAL_SECONDS=2.5, MONITOR_MAX_ATTEMPTS=3)
        )

        self.assertEqual(policy.poll_interval_seconds, 2.5)
        self.assertEqual(policy.max_attempts, 3)
        self.assertEqual(policy.warmup_seconds, 5.0)


class TestStatusMapping(unittest.TestCase):
    def test_status_aliases(self):
        self.assertEqual(map_status("waiting"), RunStatus.QUEUED)
        self.assertEqual(map_status("in_progress"), RunStatus.IN_PROGRESS)
        self.assertEqual(map_status(None), RunStatus.QUEUED)

    def test_conclusion_aliases(self):
        self.assertEqual(map_conclusion("neutral"), RunConclusion.SUCCESS)
        self.assertEqual(map_conclusion("stale"), RunConclusion.CANCELLED)
        self.assertEqual(map_conclusion("timed_out"), RunConclusion.TIMED_OUT)
        self.assertEqual(map_conclusion(None), RunConclusion.FAILURE)

    def test_status_order(self):
        self.assertLess(RunStatus.QUEUED.rank, RunStatus.IN_PROGRESS.rank)
        self.assertTrue(RunStatus.COMPLETED.is_terminal())


class TestConnectionState(unittest.IsolatedAsyncioTestCase):
    async def test_no_engine_is_unavailable(self):
        state = ConnectionState()

        self.assertFalse(await state.check_and_set())
        self.assertFalse(state.is_available())

    async def test_probe_sets_flag(self):
        from sqlalchemy.ext.asyncio import create_async_engine
        from sqlalchemy.pool import StaticPool

        engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
        state = ConnectionState(engine)
        self.assertFalse(state.is_available())

        self.assertTrue(await state.check_and_set())
        self.assertTrue(state.is_available())
        await engine.dispose()


if __name__ == "__main__":
    unittest.main()
