from __future__ import annotations

import unittest

from imgtrans.exceptions import DeliveryError, TransportError
from imgtrans.transport import PROCESS_IMAGE, Transport


class FlakyEndpoint:
    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    def __call__(self, message):
        self.calls += 1
        if self.calls <= self.failures:
            raise DeliveryError("receiving end does not exist")
        return {"echo": message["type"]}


class TestTransport(unittest.TestCase):
    def setUp(self) -> None:
        self.sleeps = []
        self.transport = Transport(retries=5, delay=1.0, sleep=self.sleeps.append)

    def test_retries_with_fixed_delay_until_delivered(self) -> None:
        endpoint = FlakyEndpoint(failures=2)
        answer = self.transport.send(endpoint, {"type": PROCESS_IMAGE})

        self.assertEqual(answer, {"echo": PROCESS_IMAGE})
        self.assertEqual(endpoint.calls, 3)
        self.assertEqual(self.sleeps, [1.0, 1.0])

    def test_exhaustion_raises_transport_error(self) -> None:
        endpoint = FlakyEndpoint(failures=100)
        with self.assertRaises(TransportError) as ctx:
            self.transport.send(endpoint, {"type": PROCESS_IMAGE})

        self.assertEqual(endpoint.calls, 5)
        self.assertEqual(len(self.sleeps), 4)
        self.assertTrue(str(ctx.exception).startswith("[Transport] PROCESS_IMAGE not delivered after 5 attempts"))
        self.assertIsInstance(ctx.exception.__cause__, DeliveryError)

    def test_other_errors_are_not_retried(self) -> None:
        calls = []

        def endpoint(message):
            calls.append(message)
            raise ValueError("bad message")

        with self.assertRaises(ValueError):
            self.transport.send(endpoint, {"type": "X"})
        self.assertEqual(len(calls), 1)
        self.assertEqual(self.sleeps, [])


if __name__ == "__main__":
    unittest.main()
