import threading

import pytest

from app.limiter import LimiterRegistry, TokenBucket


def test_bucket_starts_full_and_rejects_when_empty(clock):
    bucket = TokenBucket(rate=20, burst=1, clock=clock)

    assert bucket.try_acquire() is True
    assert bucket.try_acquire() is False


def test_bucket_rejects_within_refill_interval(clock):
    bucket = TokenBucket(rate=20, burst=1, clock=clock)
    assert bucket.try_acquire() is True

    clock.advance(0.01)
    assert bucket.try_acquire() is False


def test_bucket_allows_requests_spaced_beyond_interval(clock):
    bucket = TokenBucket(rate=20, burst=1, clock=clock)

    for _ in range(10):
        assert bucket.try_acquire() is True
        clock.advance(0.051)


def test_bucket_refill_is_capped_at_burst(clock):
    bucket = TokenBucket(rate=20, burst=3, clock=clock)
    for _ in range(3):
        assert bucket.try_acquire() is True
    assert bucket.try_acquire() is False

    clock.advance(60)
    results = [bucket.try_acquire() for _ in range(4)]
    assert results == [True, True, True, False]


def test_bucket_rejects_invalid_parameters():
    with pytest.raises(ValueError):
        TokenBucket(rate=0, burst=1)
    with pytest.raises(ValueError):
        TokenBucket(rate=1, burst=0)


def test_registry_returns_same_bucket_per_identity(registry):
    first = registry.get_or_create("10.0.0.1")

    assert registry.get_or_create("10.0.0.1") is first
    assert registry.get_or_create("10.0.0.2") is not first
    assert len(registry) == 2


def test_registry_limits_identities_independently(registry):
    assert registry.allow("10.0.0.1") is True
    assert registry.allow("10.0.0.1") is False
    assert registry.allow("10.0.0.2") is True


def test_registry_concurrent_first_access_creates_one_bucket():
    registry = LimiterRegistry(rate=20, burst=1)
    barrier = threading.Barrier(16)
    seen = []

    def worker():
        barrier.wait()
        seen.append(registry.get_or_create("192.0.2.10"))

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len({id(bucket) for bucket in seen}) == 1
    assert len(registry) == 1


def test_registry_concurrent_acquire_grants_single_token(clock):
    registry = LimiterRegistry(rate=20, burst=1, clock=clock)
    barrier = threading.Barrier(8)
    results = []

    def worker():
        barrier.wait()
        results.append(registry.allow("192.0.2.20"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 1


@pytest.mark.parametrize(
    "rate_limit, expected",
    [("20/second", 20.0), ("600/minute", 10.0), ("5 per 10 seconds", 0.5)],
)
def test_registry_from_rate_string(rate_limit, expected):
    registry = LimiterRegistry.from_rate_string(rate_limit, burst=2)

    assert registry.rate == pytest.approx(expected)
    assert registry.burst == 2
