"""
Base test class for flow tests with fast Prefect task configuration.

Provides FastPrefectTasksMixin, which runs the test class under a Prefect
test harness and replaces the economy tasks with fast-retry versions.
"""

from unittest import mock

from prefect.testing.utilities import prefect_test_harness

from economy.flows import auto_lock, race_completion


FLOW_TASKS = [
    (auto_lock, 'lock_race_task'),
    (race_completion, 'reprice_assets_task'),
    (race_completion, 'settle_batch_task'),
]


class FastPrefectTasksMixin:
    """
    Mixin to run economy flows and tasks in tests.

    Production: ECONOMY_TASK_RETRIES retries with ECONOMY_TASK_RETRY_DELAY
    second delays
    Tests: 1 retry with no delay

    Usage:
        class MyTests(FastPrefectTasksMixin, TestCase):
            def test_something(self):
                # lock_race_task now retries once, immediately
                ...
    """

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        cls.prefect_harness = prefect_test_harness()
        cls.prefect_harness.__enter__()

    @classmethod
    def tearDownClass(cls):
        cls.prefect_harness.__exit__(None, None, None)
        super().tearDownClass()

    def setUp(self):
        super().setUp()
        for module, name in FLOW_TASKS:
            fast_task = getattr(module, name).with_options(retries=1, retry_delay_seconds=0)
            patcher = mock.patch.object(module, name, fast_task)
            patcher.start()
            self.addCleanup(patcher.stop)
