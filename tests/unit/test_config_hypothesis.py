"""Property-based tests for configuration using Hypothesis.

This test suite generates option values across and beyond their bounds and
verifies that validation accepts exactly the documented ranges.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from idempotency_coordinator.config import IdempotencyOptions, IdempotencySettings

valid_ttl_strategy = st.integers(min_value=1, max_value=604800)
invalid_ttl_strategy = st.one_of(
    st.integers(max_value=0),
    st.integers(min_value=604801, max_value=10000000),
)

valid_wait_strategy = st.integers(min_value=0, max_value=60000)
invalid_wait_strategy = st.one_of(
    st.integers(max_value=-1),
    st.integers(min_value=60001, max_value=10000000),
)

valid_lock_ttl_strategy = st.integers(min_value=1, max_value=3600)
invalid_lock_ttl_strategy = st.one_of(
    st.integers(max_value=0),
    st.integers(min_value=3601, max_value=10000000),
)

scope_key_strategy = st.one_of(st.none(), st.text(max_size=50))


class TestOptionsProperties:
    """Property-based tests for IdempotencyOptions."""

    @given(
        ttl=valid_ttl_strategy,
        wait=valid_wait_strategy,
        lock_ttl=valid_lock_ttl_strategy,
        required=st.booleans(),
    )
    def test_valid_options_round_trip(
        self, ttl: int, wait: int, lock_ttl: int, required: bool
    ) -> None:
        options = IdempotencyOptions(
            ttl_seconds=ttl, wait_ms=wait, lock_ttl_seconds=lock_ttl, required=required
        )

        assert options.ttl_seconds == ttl
        assert options.wait_ms == wait
        assert options.lock_ttl_seconds == lock_ttl
        assert options.required is required

    @given(ttl=invalid_ttl_strategy)
    def test_invalid_ttl_rejected(self, ttl: int) -> None:
        with pytest.raises(ValidationError):
            IdempotencyOptions(ttl_seconds=ttl)

    @given(wait=invalid_wait_strategy)
    def test_invalid_wait_rejected(self, wait: int) -> None:
        with pytest.raises(ValidationError):
            IdempotencyOptions(wait_ms=wait)

    @given(lock_ttl=invalid_lock_ttl_strategy)
    def test_invalid_lock_ttl_rejected(self, lock_ttl: int) -> None:
        with pytest.raises(ValidationError):
            IdempotencyOptions(lock_ttl_seconds=lock_ttl)

    @given(scope_key=scope_key_strategy)
    def test_scope_key_is_none_or_trimmed(self, scope_key: str | None) -> None:
        options = IdempotencyOptions(scope_key=scope_key)

        if scope_key is None or not scope_key.strip():
            assert options.scope_key is None
        else:
            assert options.scope_key == scope_key.strip()


class TestSettingsProperties:
    """Property-based tests for IdempotencySettings."""

    @given(
        initial=st.integers(min_value=1, max_value=10000),
        extra=st.integers(min_value=0, max_value=10000),
    )
    def test_poll_intervals_accepted_when_ordered(self, initial: int, extra: int) -> None:
        settings = IdempotencySettings(initial_poll_ms=initial, max_poll_ms=initial + extra)
        assert settings.max_poll_ms >= settings.initial_poll_ms

    @given(
        initial=st.integers(min_value=2, max_value=10000),
        deficit=st.integers(min_value=1, max_value=10000),
    )
    def test_poll_ceiling_below_initial_rejected(self, initial: int, deficit: int) -> None:
        with pytest.raises(ValidationError):
            IdempotencySettings(initial_poll_ms=initial, max_poll_ms=initial - deficit)

    @given(prefix=st.text(min_size=1, max_size=30))
    def test_key_prefix_must_not_end_with_separator(self, prefix: str) -> None:
        if prefix.endswith(":"):
            with pytest.raises(ValidationError):
                IdempotencySettings(key_prefix=prefix)
        else:
            assert IdempotencySettings(key_prefix=prefix).key_prefix == prefix
