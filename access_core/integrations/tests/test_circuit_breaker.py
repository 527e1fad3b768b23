from datetime import datetime, timedelta

from django.test import SimpleTestCase

from access_core.integrations.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState


class CircuitBreakerTests(SimpleTestCase):

    def setUp(self):
        self.breaker = CircuitBreaker(
            failure_threshold=2, recovery_timeout=30, expected_exception=ConnectionError, name='test'
        )

    def fail(self):
        with self.assertRaises(ConnectionError):
            with self.breaker:
                raise ConnectionError('refused')

    def test_opens_after_threshold(self):
        self.fail()
        self.assertEqual(self.breaker.state, CircuitState.CLOSED)
        self.fail()
        self.assertTrue(self.breaker.is_open)

        with self.assertRaises(CircuitOpenError):
            with self.breaker:
                pass

    def test_unexpected_exceptions_are_not_counted(self):
        with self.assertRaises(KeyError):
            with self.breaker:
                raise KeyError('x')

        self.assertEqual(self.breaker.failure_count, 0)

    def test_half_open_trial_closes_on_success(self):
        self.fail()
        self.fail()
        self.breaker.last_failure_time = datetime.now() - timedelta(seconds=31)

        with self.breaker:
            pass

        self.assertEqual(self.breaker.state, CircuitState.CLOSED)
        self.assertEqual(self.breaker.failure_count, 0)

    def test_half_open_trial_failure_reopens(self):
        self.fail()
        self.fail()
        self.breaker.last_failure_time = datetime.now() - timedelta(seconds=31)

        self.fail()

        self.assertTrue(self.breaker.is_open)

    def test_reset(self):
        self.fail()
        self.fail()

        self.breaker.reset()

        self.assertEqual(self.breaker.state, CircuitState.CLOSED)
        self.assertEqual(self.breaker.failure_count, 0)
        self.assertIsNone(self.breaker.last_failure_time)
        self.assertFalse(self.breaker.is_open)
