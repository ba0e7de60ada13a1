# File: tests/test_health.py
import pytest

from site_auditor.config import RelayConfig
from site_auditor.relay.health import FetchAttempt, HealthTracker, RelayEndpoint, RelayStats

A = RelayEndpoint("http://a.example/?u=")
B = RelayEndpoint("http://b.example/?u=")
C = RelayEndpoint("http://c.example/?u=")


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_new_relays_keep_configured_order():
    tracker = HealthTracker([A, B, C], clock=FakeClock())
    assert tracker.rank() == [A, B, C]
    assert tracker.stats(A) == RelayStats(0, 0, 8000.0, 0.0)


def test_reliable_relay_ranks_above_flaky_one():
    tracker = HealthTracker([B, A], clock=FakeClock())
    for _ in range(10):
        tracker.record_success(A, 100)
    for _ in range(5):
        tracker.record_success(B, 100)
        tracker.record_failure(B)
    assert tracker.rank()[0] == A
    assert tracker.score(A) > tracker.score(B)


def test_running_average_latency():
    tracker = HealthTracker([A], clock=FakeClock())
    tracker.record_success(A, 100)
    tracker.record_success(A, 300)
    assert tracker.stats(A).avg_latency_ms == pytest.approx(200)


def test_score_formula():
    clock = FakeClock()
    tracker = HealthTracker([A], clock=clock)
    tracker.record_success(A, 2000)
    # success 1.0, speed 0.8, recency 1.0
    assert tracker.score(A) == pytest.approx(0.5 + 0.3 * 0.8 + 0.2)


def test_recency_bonus_decays_over_a_day():
    clock = FakeClock()
    tracker = HealthTracker([A, B], clock=clock)
    tracker.record_success(A, 1000)
    clock.now += 12 * 3600
    tracker.record_success(B, 1000)
    assert tracker.rank() == [B, A]
    clock.now += 48 * 3600
    assert tracker.score(A) == pytest.approx(tracker.score(B))


def test_stats_returns_copy():
    tracker = HealthTracker([A], clock=FakeClock())
    snapshot = tracker.stats(A)
    snapshot.successes = 99
    assert tracker.stats(A).successes == 0


def test_record_attempt():
    tracker = HealthTracker([A], clock=FakeClock())
    tracker.record(FetchAttempt(A, 500, ok=True))
    tracker.record(FetchAttempt(A, 0, ok=False, reason="HTTP 502", status_code=502))
    stats = tracker.stats(A)
    assert (stats.successes, stats.failures) == (1, 1)


def test_unknown_relay_tracked_but_not_ranked():
    tracker = HealthTracker([A], clock=FakeClock())
    tracker.record_failure(C)
    assert tracker.stats(C).failures == 1
    assert tracker.rank() == [A]


def test_from_config_and_empty_pool():
    tracker = HealthTracker.from_config([RelayConfig.model_validate("https://api.allorigins.win/get?url=")])
    assert tracker.relays[0].envelope == "contents"
    assert tracker.relays[0].build_url("https://x.org/a?b=1") == (
        "https://api.allorigins.win/get?url=https%3A%2F%2Fx.org%2Fa%3Fb%3D1"
    )
    with pytest.raises(ValueError):
        HealthTracker([])
