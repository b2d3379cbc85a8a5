"""Unit tests for utility helpers."""

from datetime import datetime, timedelta, timezone

import pytest

from email_triage.utils import from_iso, retry_on_failure, to_iso


class TestTimestamps:
    def test_naive_datetimes_are_treated_as_utc(self) -> None:
        assert to_iso(datetime(2024, 3, 13, 15, 0)) == "2024-03-13T15:00:00.000000+00:00"

    def test_offsets_are_normalised_to_utc(self) -> None:
        local = datetime(2024, 3, 13, 11, 0, tzinfo=timezone(timedelta(hours=-4)))

        assert from_iso(to_iso(local)) == datetime(2024, 3, 13, 15, 0, tzinfo=timezone.utc)

    def test_empty_values(self) -> None:
        assert to_iso(None) is None
        assert from_iso(None) is None
        assert from_iso("") is None


class TestRetryOnFailure:
    """Test suite for the retry decorator."""

    def test_retries_until_success(self) -> None:
        calls = []

        @retry_on_failure(max_retries=3, delay=0, exceptions=(ConnectionError,))
        def flaky() -> str:
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("refused")
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3

    def test_gives_up_after_max_retries(self) -> None:
        calls = []

        @retry_on_failure(max_retries=2, delay=0)
        def broken() -> None:
            calls.append(1)
            raise RuntimeError("still down")

        with pytest.raises(RuntimeError, match="still down"):
            broken()
        assert len(calls) == 3

    def test_other_exceptions_propagate_immediately(self) -> None:
        calls = []

        @retry_on_failure(max_retries=3, delay=0, exceptions=(ConnectionError,))
        def wrong() -> None:
            calls.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            wrong()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_coroutines_are_retried(self) -> None:
        calls = []

        @retry_on_failure(max_retries=1, delay=0)
        async def flaky() -> int:
            calls.append(1)
            if len(calls) == 1:
                raise TimeoutError("slow")
            return 42

        assert await flaky() == 42
        assert len(calls) == 2
