from __future__ import annotations

import pytest

from vrcwatch.backoff import ExponentialBackoff, FixedCooldown


def test_unjittered_delay_doubles_until_ceiling() -> None:
    policy = ExponentialBackoff(base=1.0, max_delay=300.0)

    delays = [policy.unjittered(n) for n in range(12)]

    assert delays[:9] == [1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 64.0, 128.0, 256.0]
    assert delays[9:] == [300.0, 300.0, 300.0]
    assert all(a <= b for a, b in zip(delays, delays[1:]))


def test_exponent_is_capped_for_large_attempts() -> None:
    policy = ExponentialBackoff(base=1.0, max_delay=1e9, cap_exponent=10)

    assert policy.unjittered(10) == 1024.0
    assert policy.unjittered(10_000) == 1024.0


def test_jitter_bounds() -> None:
    low = ExponentialBackoff(base=2.0, max_delay=300.0, rand=lambda: 0.0)
    mid = ExponentialBackoff(base=2.0, max_delay=300.0, rand=lambda: 0.5)
    high = ExponentialBackoff(base=2.0, max_delay=300.0, rand=lambda: 0.999999)

    assert low.compute_delay(3) == pytest.approx(16.0 * 0.75)
    assert mid.compute_delay(3) == pytest.approx(16.0)
    assert high.compute_delay(3) < 16.0 * 1.25
    assert high.compute_delay(3) == pytest.approx(16.0 * 1.25, rel=1e-5)


def test_jittered_delay_stays_within_range_of_ceiling() -> None:
    policy = ExponentialBackoff(base=1.0, max_delay=300.0)

    for _ in range(200):
        delay = policy.compute_delay(50)
        assert 225.0 <= delay <= 375.0


def test_negative_attempt_rejected() -> None:
    with pytest.raises(ValueError):
        ExponentialBackoff().unjittered(-1)


def test_fixed_cooldown_ignores_attempts() -> None:
    cooldown = FixedCooldown(1800.0)

    assert cooldown.compute_delay(0) == 1800.0
    assert cooldown.compute_delay(42) == 1800.0
