"""Tests for AuthorizationSession: callback evaluation and single resolution."""
import threading
import time

import pytest

from oauth_client.pkce import derive_challenge
from oauth_client.providers import ProviderDescriptor
from oauth_client.session import AuthorizationSession, CallbackResult, SessionState, evaluate_callback


@pytest.fixture
def provider():
    return ProviderDescriptor(
        name="example",
        client_id="cid",
        authorize_url="https://as.example/authorize",
        token_url="https://as.example/token",
        revoke_url="https://as.example/revoke",
        required_scopes=frozenset({"photos", "profile"}),
    )


@pytest.fixture
def session(provider):
    return AuthorizationSession(provider, "me")


def test_new_session_has_matching_pkce_pair(session):
    assert session.state == SessionState.INIT
    assert session.code_challenge == derive_challenge(session.code_verifier)
    assert not session.resolved


def test_sessions_do_not_share_state(provider):
    a = AuthorizationSession(provider, "a")
    b = AuthorizationSession(provider, "b")
    a.submit_code("code-a", "photos profile")
    assert b.result is None
    assert a.code_verifier != b.code_verifier


def test_evaluate_accepts_superset_of_required_scopes(provider):
    result = evaluate_callback(provider, "abc", None, "photos profile extra")
    assert result.ok
    assert result.code == "abc"
    assert result.scopes == frozenset({"photos", "profile", "extra"})


def test_evaluate_error_is_access_denied(provider):
    result = evaluate_callback(provider, None, "access_denied", None)
    assert not result.ok
    assert result.reason == "access-denied"
    assert "access_denied" in result.description


def test_evaluate_missing_code(provider):
    assert evaluate_callback(provider, "", None, "photos profile").reason == "missing-code"


def test_evaluate_missing_scope(provider):
    assert evaluate_callback(provider, "abc", None, None).reason == "insufficient-scope"
    result = evaluate_callback(provider, "abc", None, "photos")
    assert result.reason == "insufficient-scope"
    assert "profile" in result.description


def test_evaluate_without_required_scopes_ignores_scope():
    p = ProviderDescriptor(
        name="noscope",
        client_id="cid",
        authorize_url="https://as.example/authorize",
        token_url="https://as.example/token",
        revoke_url="https://as.example/revoke",
    )
    assert evaluate_callback(p, "abc", None, None).ok


def test_first_resolution_wins(session):
    assert session.submit_code("first", "photos profile") is True
    assert session.submit_code("second", "photos profile") is False
    assert session.submit_code(None, None, error="access_denied") is False
    assert session.received_code == "first"
    assert session.received_error is None


def test_submit_error_resolves_as_denied(session):
    assert session.submit_error("access_denied", "User said no") is True
    assert session.result.reason == "access-denied"
    assert "User said no" in session.received_error
    assert session.received_code is None


def test_wait_returns_immediately_when_resolved(session):
    session.submit_code("abc", "photos profile")
    result = session.wait_for_callback(5)
    assert result.code == "abc"


def test_wait_times_out(session):
    start = time.monotonic()
    result = session.wait_for_callback(0.05)
    assert time.monotonic() - start < 1.0
    assert result.reason == "timeout"
    # A late callback no longer changes the outcome
    assert session.submit_code("late", "photos profile") is False
    assert session.result.reason == "timeout"


def test_abort_unblocks_waiter_from_another_thread(session):
    results: list[CallbackResult] = []
    waiter = threading.Thread(target=lambda: results.append(session.wait_for_callback(10)))
    waiter.start()
    time.sleep(0.05)
    start = time.monotonic()
    assert session.abort() is True
    waiter.join(2)
    assert not waiter.is_alive()
    assert time.monotonic() - start < 1.0
    assert results[0].reason == "cancelled"
    assert session.abort_requested


def test_abort_stops_attached_listener(session):
    class Listener:
        stopped = 0

        def stop(self):
            self.stopped += 1

    listener = Listener()
    session.attach_listener(listener)
    session.abort()
    assert listener.stopped == 1


def test_abort_after_finish_is_refused(session):
    session.finish(SessionState.AUTHORIZED)
    assert session.abort() is False
    assert session.state == SessionState.AUTHORIZED


def test_finish_is_final(session):
    session.finish(SessionState.TIMEOUT, "timeout")
    session.finish(SessionState.FAILED, "other")
    assert session.state == SessionState.TIMEOUT
    assert session.failure_reason == "timeout"
    with pytest.raises(RuntimeError):
        session.transition(SessionState.LISTENING)
