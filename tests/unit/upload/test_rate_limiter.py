import random

import pytest

from freebucket.upload.rate_limiter import SlidingWindowRateLimiter


def build_limiter(**kwargs) -> SlidingWindowRateLimiter:
    kwargs.setdefault("rand", lambda: 1.0)
    return SlidingWindowRateLimiter(**kwargs)


def test_twenty_first_attempt_in_window_is_rejected() -> None:
    limiter = build_limiter()

    results = [limiter.try_admit("1.2.3.4", now=float(i)) for i in range(21)]

    assert results[:20] == [True] * 20
    assert results[20] is False
    assert len(limiter.attempts["1.2.3.4"]) == 20


def test_rejected_attempts_do_not_extend_the_window() -> None:
    limiter = build_limiter(window_seconds=10, max_attempts=2)
    limiter.try_admit("a", now=0)
    limiter.try_admit("a", now=1)

    assert not limiter.try_admit("a", now=5)
    assert limiter.attempts["a"] == [0, 1]
    assert not limiter.try_admit("a", now=10)
    assert limiter.try_admit("a", now=10.5)


def test_identities_are_independent() -> None:
    limiter = build_limiter(max_attempts=1)

    assert limiter.try_admit("a", now=0)
    assert limiter.try_admit("b", now=0)
    assert not limiter.try_admit("a", now=1)
    assert not limiter.try_admit("b", now=1)
    assert limiter.try_admit("c", now=1)


def test_compact_drops_expired_identities() -> None:
    limiter = build_limiter(window_seconds=100)
    limiter.try_admit("old", now=0)
    limiter.try_admit("fresh", now=0)
    limiter.try_admit("fresh", now=150)

    removed = limiter.compact(now=160)

    assert removed == 1
    assert "old" not in limiter.attempts
    assert limiter.attempts["fresh"] == [150]


def test_probabilistic_sweep_runs_when_draw_is_below_probability() -> None:
    limiter = SlidingWindowRateLimiter(window_seconds=10, sweep_probability=0.5, rand=lambda: 0.1)
    limiter.try_admit("gone", now=0)

    limiter.try_admit("other", now=100)

    assert set(limiter.attempts) == {"other"}


def test_uses_clock_when_no_time_given() -> None:
    ticks = iter([0.0, 1.0, 2.0])
    limiter = build_limiter(max_attempts=2, clock=lambda: next(ticks))

    assert limiter.try_admit("a")
    assert limiter.try_admit("a")
    assert not limiter.try_admit("a")


@pytest.mark.parametrize("seed", range(8))
def test_never_admits_more_than_cap_in_any_window(seed: int) -> None:
    rng = random.Random(seed)
    cap = rng.randint(1, 6)
    window = rng.choice([1.0, 5.0, 30.0])
    limiter = SlidingWindowRateLimiter(
        window_seconds=window, max_attempts=cap, sweep_probability=0.2, rand=rng.random
    )

    now = 0.0
    admitted: list[float] = []
    for _ in range(400):
        now += rng.choice([0.0, 0.1, 0.5, 1.0, rng.uniform(0, window)])
        identity = rng.choice(["a", "b"])
        if limiter.try_admit(identity, now=now) and identity == "a":
            admitted.append(now)

    for start in admitted:
        in_window = [ts for ts in admitted if start <= ts <= start + window]
        assert len(in_window) <= cap
