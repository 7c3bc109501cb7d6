"""Tests for soft-failing check aggregation."""

import logging
import unittest

from blockprobe.harness.checks import CheckAggregator, CheckResult, require

logger = logging.getLogger(__name__)


class CheckAggregatorTests(unittest.TestCase):
    """Failures are recorded with the supplied message and never re-raised."""

    def test_failing_check_returns_supplied_message(self) -> None:
        aggregator = CheckAggregator()
        with self.assertLogs("blockprobe.harness.checks", level="WARNING") as captured:
            result = aggregator.run_check(lambda: require(False, "raw detail"), "Operator message.")
        self.assertFalse(result.passed)
        self.assertEqual(result.message, "Operator message.")
        self.assertEqual(result.detail, "raw detail")
        self.assertIn("raw detail", captured.output[0])

    def test_passing_check_has_no_message(self) -> None:
        aggregator = CheckAggregator()
        result = aggregator.run_check(lambda: None, "unused")
        self.assertEqual(result, CheckResult(passed=True))
        self.assertTrue(aggregator.passed)

    def test_all_checks_run_after_a_failure(self) -> None:
        aggregator = CheckAggregator()
        aggregator.run_check(lambda: require(False, "first"), "First failed.")
        aggregator.run_check(lambda: None, "Second failed.")
        aggregator.run_check(lambda: require(False, "third"), "Third failed.")
        self.assertEqual([result.passed for result in aggregator.results], [False, True, False])
        self.assertEqual(aggregator.first_failure.message, "First failed.")
        self.assertEqual(len(aggregator.failures), 2)

    def test_non_assertion_errors_propagate(self) -> None:
        aggregator = CheckAggregator()

        def _broken() -> None:
            raise KeyError("boom")

        with self.assertRaises(KeyError):
            aggregator.run_check(_broken, "never surfaced")
        self.assertEqual(aggregator.results, [])

    def test_plain_assert_statements_are_caught(self) -> None:
        aggregator = CheckAggregator()

        def _check() -> None:
            assert 1 + 1 == 3, "math"

        result = aggregator.run_check(_check, "Math is broken.")
        self.assertFalse(result.passed)

    def test_reset_clears_results(self) -> None:
        aggregator = CheckAggregator()
        aggregator.run_check(lambda: require(False, "x"), "X.")
        aggregator.reset()
        self.assertEqual(aggregator.results, [])
        self.assertIsNone(aggregator.first_failure)


class AsyncCheckAggregatorTests(unittest.IsolatedAsyncioTestCase):
    """Coroutine checks follow the same rules."""

    async def test_async_check_failure_is_recorded(self) -> None:
        logger.info("Testing awaitable check failure capture.")
        aggregator = CheckAggregator()

        async def _check() -> None:
            require(False, "async detail")

        result = await aggregator.run_async_check(_check, "Async failed.")
        self.assertFalse(result.passed)
        self.assertEqual(result.message, "Async failed.")

    async def test_async_check_without_message_surfaces_assertion_text(self) -> None:
        aggregator = CheckAggregator()

        async def _check() -> None:
            require(False, "Notice: plugin folder not writable.")

        result = await aggregator.run_async_check(_check)
        self.assertFalse(result.passed)
        self.assertEqual(result.message, "Notice: plugin folder not writable.")
        self.assertEqual(aggregator.first_failure, result)

    async def test_async_check_pass(self) -> None:
        aggregator = CheckAggregator()

        async def _check() -> None:
            require(True, "unused")

        result = await aggregator.run_async_check(_check, "unused")
        self.assertTrue(result.passed)


if __name__ == "__main__":
    unittest.main()
