from psyconnect.services.session_store import SessionStore


def test_idle_sessions_expire():
    now = [1000.0]
    sessions = SessionStore(ttl_seconds=60, clock=lambda: now[0])
    old = sessions.create()
    now[0] += 30
    kept = sessions.create()
    now[0] += 45
    fresh = sessions.create()
    assert sessions.get(old.session_id) is None
    assert sessions.get(kept.session_id) is kept
    assert len(sessions) == 2

    # a session in the middle of a turn is left alone
    with sessions.claim(fresh.session_id):
        now[0] += 120
        assert sessions.purge_expired() == 1
        assert sessions.get(fresh.session_id) is fresh
    assert sessions.get(kept.session_id) is None


def test_activity_keeps_session_alive():
    now = [0.0]
    sessions = SessionStore(ttl_seconds=60, clock=lambda: now[0])
    state = sessions.create()
    for _ in range(5):
        now[0] += 50
        assert sessions.save(state)
    assert sessions.purge_expired() == 0


def test_save_does_not_bring_back_deleted_session():
    sessions = SessionStore()
    state = sessions.create()
    assert sessions.delete(state.session_id)
    assert sessions.save(state) is False
    assert sessions.get(state.session_id) is None


def test_created_at_is_timezone_aware():
    state = SessionStore().create()
    assert state.created_at.tzinfo is not None
