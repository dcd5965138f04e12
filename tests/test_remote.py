import json
import threading
import unittest
from concurrent.futures import TimeoutError as FuturesTimeoutError
from unittest import mock

from src.analyzers import remote
from src.analyzers.metrics import ALL_CHANNELS, METRIC_CHANNELS, SkinMetrics, channel_id
from src.analyzers.remote import (
    RemoteResponseError,
    call_with_timeout,
    classify_skin,
    is_quota_error,
    parse_skin_response,
)


def remote_payload(value: int = 85, **overrides):
    payload = {channel_id(name): value for name in METRIC_CHANNELS}
    payload["analysisSummary"] = "Healthy skin with minor dryness."
    payload.update(overrides)
    return payload


def hint_metrics() -> SkinMetrics:
    return SkinMetrics(**{name: 64 for name in ALL_CHANNELS})


class ParseSkinResponseTests(unittest.TestCase):
    def test_missing_channel_is_invalid(self) -> None:
        payload = remote_payload()
        del payload["redness"]
        with self.assertRaises(RemoteResponseError):
            parse_skin_response(payload)

    def test_accepts_json_text_and_computes_overall(self) -> None:
        metrics = parse_skin_response(json.dumps(remote_payload(100)))

        self.assertEqual(metrics.redness, 100)
        self.assertEqual(metrics.overall_score, 98)
        self.assertEqual(metrics.analysis_summary, "Healthy skin with minor dryness.")

    def test_malformed_numbers_become_neutral(self) -> None:
        metrics = parse_skin_response(
            remote_payload(acneActive="lots", observations={"redness": "Flushed", "bad": 3})
        )
        self.assertEqual(metrics.acne_active, 70)
        self.assertEqual(metrics.observations, {"redness": "Flushed"})

    def test_invalid_json_is_rejected(self) -> None:
        with self.assertRaises(RemoteResponseError):
            parse_skin_response("{not json")
        with self.assertRaises(RemoteResponseError):
            parse_skin_response([1, 2, 3])


class ClassifySkinTests(unittest.TestCase):
    def test_successful_call(self) -> None:
        classify = mock.Mock(return_value=remote_payload())
        hint = hint_metrics()

        result = classify_skin(classify, b"jpeg", hint=hint)

        self.assertFalse(result.degraded)
        self.assertEqual(result.source, "remote")
        self.assertEqual(result.metrics.hydration, 85)
        classify.assert_called_once_with(b"jpeg", hint)

    def test_missing_field_falls_back_to_hint(self) -> None:
        payload = remote_payload()
        del payload["darkCircles"]
        hint = hint_metrics()

        with self.assertLogs("src.analyzers.remote", level="WARNING"):
            result = classify_skin(mock.Mock(return_value=payload), b"jpeg", hint=hint)

        self.assertTrue(result.degraded)
        self.assertEqual(result.source, "local")
        self.assertIs(result.metrics, hint)

    def test_failure_without_hint_uses_offline_baseline(self) -> None:
        classify = mock.Mock(side_effect=RuntimeError("429 RESOURCE_EXHAUSTED"))

        with self.assertLogs("src.analyzers.remote", level="WARNING"):
            result = classify_skin(classify, b"jpeg")

        self.assertEqual(result.source, "baseline")
        self.assertTrue(result.metrics.analysis_summary.startswith("Offline Analysis"))
        self.assertEqual(result.metrics.redness, 65)

    def test_timeout_falls_back(self) -> None:
        release = threading.Event()

        def slow(image_bytes, hint):
            release.wait(2.0)
            return remote_payload()

        try:
            with self.assertLogs("src.analyzers.remote", level="WARNING"):
                result = classify_skin(slow, b"jpeg", hint=hint_metrics(), timeout_s=0.05)
        finally:
            release.set()

        self.assertTrue(result.degraded)
        self.assertEqual(result.source, "local")

    def test_no_collaborator_is_offline(self) -> None:
        result = classify_skin(None, b"jpeg")
        self.assertTrue(result.degraded)
        self.assertEqual(result.source, "baseline")


class CallWithTimeoutTests(unittest.TestCase):
    def test_calls_share_one_executor(self) -> None:
        executor = remote._executor

        first = call_with_timeout(lambda: threading.current_thread().name, timeout_s=1.0)
        second = call_with_timeout(lambda: threading.current_thread().name, timeout_s=1.0)

        self.assertIs(remote._executor, executor)
        self.assertTrue(first.startswith("remote-collaborator"))
        self.assertTrue(second.startswith("remote-collaborator"))

    def test_does_not_create_an_executor_per_call(self) -> None:
        with mock.patch("src.analyzers.remote.ThreadPoolExecutor") as factory:
            self.assertEqual(call_with_timeout(lambda x: x * 2, 21, timeout_s=1.0), 42)
        factory.assert_not_called()

    def test_overrun_raises_timeout(self) -> None:
        release = threading.Event()
        try:
            with self.assertRaises(FuturesTimeoutError):
                call_with_timeout(release.wait, 2.0, timeout_s=0.05)
        finally:
            release.set()


class QuotaErrorTests(unittest.TestCase):
    def test_detects_quota_errors(self) -> None:
        self.assertTrue(is_quota_error(RuntimeError("429 Too Many Requests")))
        self.assertTrue(is_quota_error(RuntimeError("RESOURCE_EXHAUSTED: quota")))
        error = RuntimeError("rate limited")
        error.status_code = 429
        self.assertTrue(is_quota_error(error))
        self.assertFalse(is_quota_error(ValueError("boom")))


if __name__ == "__main__":
    unittest.main()
