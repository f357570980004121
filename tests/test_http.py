import unittest

import requests

from moongazer.data_sources import http
from moongazer.data_sources.base import CallableStrategy, run_chain
from moongazer.errors import MalformedPayload, ProviderError, ProviderTimeout


class _FakeResponse:
    def __init__(self, payload=None, status_code=200, body_is_json=True):
        self._payload = payload
        self.status_code = status_code
        self._body_is_json = body_is_json

    def json(self):
        if not self._body_is_json:
            raise ValueError("Expecting value")
        return self._payload


class _FakeSession:
    def __init__(self, outcome):
        self.outcome = outcome
        self.timeouts = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.timeouts.append(timeout)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class TestGetJson(unittest.TestCase):
    def setUp(self):
        self._orig_session = http.session

    def tearDown(self):
        http.session = self._orig_session

    def test_session_sends_user_agent(self):
        self.assertEqual(self._orig_session.headers["User-Agent"], "Moongazers-App/1.0")

    def test_success_passes_timeout(self):
        fake = _FakeSession(_FakeResponse({"ok": True}))
        http.session = fake
        self.assertEqual(http.get_json("p", "https://example.test", timeout=2.5), {"ok": True})
        self.assertEqual(fake.timeouts, [2.5])

    def test_failures_are_typed(self):
        cases = [
            (requests.exceptions.ReadTimeout("slow"), ProviderTimeout),
            (requests.exceptions.ConnectionError("refused"), ProviderError),
            (_FakeResponse(status_code=429), ProviderError),
            (_FakeResponse(body_is_json=False), MalformedPayload),
        ]
        for outcome, expected in cases:
            http.session = _FakeSession(outcome)
            with self.assertRaises(expected) as ctx:
                http.get_json("provider-x", "https://example.test", timeout=1)
            self.assertEqual(ctx.exception.provider, "provider-x")


class TestRunChain(unittest.TestCase):
    def test_first_success_wins(self):
        calls = []

        def record(name, result):
            def attempt():
                calls.append(name)
                return result
            return attempt

        outcome = run_chain(
            [CallableStrategy("a", record("a", None)), CallableStrategy("b", record("b", 42)),
             CallableStrategy("c", record("c", 7))],
            context="test",
        )
        self.assertEqual(outcome, (42, "b"))
        self.assertEqual(calls, ["a", "b"])

    def test_provider_errors_are_absorbed(self):
        def boom():
            raise ProviderTimeout("a", "slow")

        self.assertEqual(run_chain([CallableStrategy("a", boom), CallableStrategy("b", lambda: "ok")],
                                   context="test"), ("ok", "b"))
        self.assertIsNone(run_chain([CallableStrategy("a", boom)], context="test"))

    def test_programming_errors_propagate(self):
        def broken():
            raise KeyError("oops")

        with self.assertRaises(KeyError):
            run_chain([CallableStrategy("a", broken), CallableStrategy("b", lambda: "ok")], context="test")


if __name__ == "__main__":
    unittest.main()
