"""Unit tests for LoginThrottle."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from backend.services.rate_limit_service import LoginThrottle


class TestLoginThrottle:
    def test_not_throttled_below_threshold(self) -> None:
        throttle = LoginThrottle(max_failures=3, window_seconds=60)
        throttle.record_failure("key1")
        assert throttle.retry_after("key1") == 0

    def test_throttled_at_threshold(self) -> None:
        throttle = LoginThrottle(max_failures=3, window_seconds=60)
        for _ in range(3):
            throttle.record_failure("key1")
        assert 0 < throttle.retry_after("key1") <= 61

    def test_keys_are_independent(self) -> None:
        throttle = LoginThrottle(max_failures=1, window_seconds=60)
        throttle.record_failure("key1")
        assert throttle.retry_after("key2") == 0

    def test_reset_clears_failures(self) -> None:
        throttle = LoginThrottle(max_failures=1, window_seconds=60)
        throttle.record_failure("key1")
        throttle.reset("key1")
        assert throttle.retry_after("key1") == 0

    def test_failures_expire_after_window(self) -> None:
        throttle = LoginThrottle(max_failures=2, window_seconds=60)
        with patch("backend.services.rate_limit_service.time.monotonic", return_value=1000.0):
            throttle.record_failure("key1")
            throttle.record_failure("key1")
            assert throttle.retry_after("key1") > 0
        with patch("backend.services.rate_limit_service.time.monotonic", return_value=1061.0):
            assert throttle.retry_after("key1") == 0

    def test_rejects_invalid_limits(self) -> None:
        with pytest.raises(ValueError):
            LoginThrottle(max_failures=0, window_seconds=60)
