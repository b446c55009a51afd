"""Tests for the in-memory session manager."""

from ccbot.providers.base import ProviderId
from ccbot.session.manager import SWEEP_GRACE, SessionManager


def test_touch_creates_session_bound_to_provider(clock) -> None:
    sessions = SessionManager(timeout=30, clock=clock)
    assert not sessions.is_active("u1", "c1")

    session = sessions.touch("u1", "c1", force_new=True, provider=ProviderId.SECONDARY)

    assert sessions.is_active("u1", "c1")
    assert session.provider == ProviderId.SECONDARY
    assert session.is_new is True
    assert session.notified is False
    assert session.start_time == clock.now


def test_session_expires_after_timeout_and_is_removed_on_lookup(clock) -> None:
    sessions = SessionManager(timeout=30, clock=clock)
    sessions.touch("u1", "c1", force_new=True)

    clock.advance(30)
    assert sessions.is_active("u1", "c1")  # boundary is inclusive

    clock.advance(0.5)
    assert not sessions.is_active("u1", "c1")
    assert len(sessions) == 0
    assert sessions.peek("u1", "c1") is None


def test_refresh_keeps_start_time_and_overwrites_provider(clock) -> None:
    sessions = SessionManager(timeout=30, clock=clock)
    first = sessions.touch("u1", "c1", force_new=True, provider=ProviderId.PRIMARY)
    started = first.start_time

    clock.advance(10)
    refreshed = sessions.touch("u1", "c1", force_new=False, provider=ProviderId.SECONDARY)

    assert refreshed is first
    assert refreshed.start_time == started
    assert refreshed.last_activity == clock.now
    assert refreshed.provider == ProviderId.SECONDARY
    assert refreshed.is_new is False


def test_force_new_replaces_session(clock) -> None:
    sessions = SessionManager(timeout=30, clock=clock)
    sessions.touch("u1", "c1", force_new=True)
    sessions.mark_notified(sessions.peek("u1", "c1"))

    clock.advance(5)
    fresh = sessions.touch("u1", "c1", force_new=True, provider=ProviderId.SECONDARY)

    assert fresh.start_time == clock.now
    assert fresh.notified is False
    assert fresh.is_new is True


def test_marking_a_replaced_session_leaves_the_live_one_alone(clock) -> None:
    sessions = SessionManager(timeout=30, clock=clock)
    old = sessions.touch("u1", "c1", force_new=True, provider=ProviderId.PRIMARY)
    live = sessions.touch("u1", "c1", force_new=True, provider=ProviderId.SECONDARY)

    sessions.mark_notified(old)

    assert old.notified is True
    assert live.notified is False
    assert sessions.peek("u1", "c1") is live


def test_touch_after_expiry_starts_new_session(clock) -> None:
    sessions = SessionManager(timeout=30, clock=clock)
    sessions.touch("u1", "c1", force_new=True)
    clock.advance(31)

    session = sessions.touch("u1", "c1", force_new=False)
    assert session.is_new is True
    assert session.start_time == clock.now


def test_sessions_are_scoped_per_user_and_channel(clock) -> None:
    sessions = SessionManager(timeout=30, clock=clock)
    sessions.touch("u1", "c1", force_new=True)

    assert not sessions.is_active("u1", "c2")
    assert not sessions.is_active("u2", "c1")


def test_sweep_reclaims_only_expired_sessions(clock) -> None:
    sessions = SessionManager(timeout=30, clock=clock)
    sessions.touch("u1", "c1", force_new=True)
    sessions.touch("u2", "c1", force_new=True)

    clock.advance(20)
    sessions.touch("u2", "c1")  # u2 keeps talking

    clock.advance(10 + SWEEP_GRACE + 0.1)
    removed = sessions.sweep()

    assert removed == 1
    assert sessions.peek("u1", "c1") is None
    assert sessions.peek("u2", "c1") is not None


def test_sweep_ignores_stale_heap_entries_for_refreshed_sessions(clock) -> None:
    sessions = SessionManager(timeout=30, clock=clock)
    sessions.touch("u1", "c1", force_new=True)
    for _ in range(5):
        clock.advance(25)
        sessions.touch("u1", "c1")

    assert sessions.sweep() == 0
    assert sessions.is_active("u1", "c1")

    clock.advance(30 + SWEEP_GRACE + 0.1)
    assert sessions.sweep() == 1
    assert len(sessions) == 0
