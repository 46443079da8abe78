# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from connection.backoff import BackoffPolicy


@pytest.mark.parametrize(
    "attempt,expected_ms",
    [(1, 2000), (2, 4000), (3, 8000), (4, 16000), (5, 30000)],
)
def test_delay_doubles_and_caps(attempt: int, expected_ms: int) -> None:
    decision = BackoffPolicy().decide(attempt)

    assert not decision.give_up
    assert decision.delay_ms == expected_ms
    assert decision.delay_ms == min(1000 * 2 ** attempt, 30000)


def test_sixth_attempt_gives_up() -> None:
    decision = BackoffPolicy().decide(6)

    assert decision.give_up


def test_attempt_must_be_positive() -> None:
    with pytest.raises(ValueError):
        BackoffPolicy().decide(0)


def test_custom_max_attempts() -> None:
    policy = BackoffPolicy(max_attempts=2)

    assert not policy.decide(2).give_up
    assert policy.decide(3).give_up


def test_zero_max_attempts_never_retries() -> None:
    assert BackoffPolicy(max_attempts=0).decide(1).give_up


def test_jitter_uses_rng_and_never_exceeds_cap() -> None:
    policy = BackoffPolicy(jitter_ratio=0.5)
    calls: list[tuple[float, float]] = []

    def high(lo: float, hi: float) -> float:
        calls.append((lo, hi))
        return hi

    assert policy.decide(1, rng=high).delay_ms == 3000
    assert policy.decide(5, rng=high).delay_ms == 30000
    assert calls[0] == (0.5, 1.5)


def test_no_jitter_does_not_consult_rng() -> None:
    def boom(lo: float, hi: float) -> float:
        raise AssertionError("rng must not be called")

    assert BackoffPolicy().decide(2, rng=boom).delay_ms == 4000


@pytest.mark.parametrize("ratio", [-0.1, 1.0, 2.0])
def test_invalid_jitter_rejected(ratio: float) -> None:
    with pytest.raises(ValueError):
        BackoffPolicy(jitter_ratio=ratio)
