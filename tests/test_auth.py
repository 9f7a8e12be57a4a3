"""Tests for the token lifecycle manager."""

import threading
from datetime import datetime
from unittest import mock

import pytest
from google.auth.exceptions import RefreshError, TransportError

from helpers import HOUR_MS, NOW_MS, FakeMailClient, FakeRefresher, http_error
from signup_scanner.auth import GoogleTokenRefresher, TokenManager, load_client_config
from signup_scanner.errors import (
    InvalidGrant,
    ReauthRequired,
    TokenRefreshTransient,
    UserNotFound,
)
from signup_scanner.models import Credential, TokenGrant, UserRecord
from signup_scanner.store import InMemoryUserStore

MINUTE_MS = 60 * 1000


def _user(expiry_ms=None, access="access", refresh="refresh") -> UserRecord:
    return UserRecord(
        user_id="user42",
        credential=Credential(access_token=access, refresh_token=refresh, expiry_ms=expiry_ms),
    )


def _manager(store=None, refresher=None, client=None) -> TokenManager:
    client = client or FakeMailClient()
    return TokenManager(
        store or InMemoryUserStore(),
        refresher or FakeRefresher(),
        client_factory=lambda credential: client,
        clock=lambda: NOW_MS,
    )


def test_missing_access_token_requires_reauth():
    with pytest.raises(ReauthRequired):
        _manager().validate_and_refresh(_user(access=None))


def test_missing_refresh_token_requires_reauth():
    refresher = FakeRefresher()
    with pytest.raises(ReauthRequired) as exc_info:
        _manager(refresher=refresher).validate_and_refresh(_user(NOW_MS - 1, refresh=""))
    assert exc_info.value.user_id == "user42"
    assert refresher.calls == []


def test_unset_expiry_returns_unchanged():
    refresher = FakeRefresher()
    user = _user(expiry_ms=None)
    outcome = _manager(refresher=refresher).validate_and_refresh(user)
    assert outcome.was_refreshed is False
    assert outcome.credential is user.credential
    assert refresher.calls == []


def test_far_expiry_returns_unchanged():
    refresher = FakeRefresher()
    outcome = _manager(refresher=refresher).validate_and_refresh(_user(NOW_MS + 11 * MINUTE_MS))
    assert outcome.was_refreshed is False
    assert refresher.calls == []


def test_expiring_within_window_is_refreshed():
    store = InMemoryUserStore()
    refresher = FakeRefresher(TokenGrant(access_token="fresh", expiry_ms=NOW_MS + HOUR_MS))
    outcome = _manager(store, refresher).validate_and_refresh(_user(NOW_MS + 10 * MINUTE_MS))

    assert outcome.was_refreshed is True
    assert outcome.credential.access_token == "fresh"
    assert outcome.credential.expiry_ms == NOW_MS + HOUR_MS
    assert outcome.credential.last_refreshed_at == NOW_MS
    assert refresher.calls == ["refresh"]


def test_refresh_keeps_refresh_token_when_not_rotated():
    store = InMemoryUserStore()
    outcome = _manager(store).validate_and_refresh(_user(NOW_MS - 1))

    assert outcome.credential.refresh_token == "refresh"
    user_id, fields = store.writes[-1]
    assert user_id == "user42"
    assert "refresh_token" not in fields
    assert fields["access_token"] == "new-access"
    assert fields["last_refreshed_at"] == NOW_MS


def test_refresh_persists_rotated_refresh_token():
    store = InMemoryUserStore()
    refresher = FakeRefresher(TokenGrant("fresh", NOW_MS + HOUR_MS, refresh_token="rotated"))
    outcome = _manager(store, refresher).validate_and_refresh(_user(NOW_MS - 1))

    assert outcome.credential.refresh_token == "rotated"
    assert store.writes[-1][1]["refresh_token"] == "rotated"


def test_invalid_grant_requires_reauth():
    store = InMemoryUserStore()
    refresher = FakeRefresher(error=InvalidGrant("invalid_grant"))
    with pytest.raises(ReauthRequired):
        _manager(store, refresher).validate_and_refresh(_user(NOW_MS - 1))
    assert store.writes == []


def test_transient_refresh_failure_propagates():
    refresher = FakeRefresher(error=TokenRefreshTransient("503"))
    with pytest.raises(TokenRefreshTransient):
        _manager(refresher=refresher).validate_and_refresh(_user(NOW_MS - 1))


def test_create_client_reads_store_and_checks_profile(user_store):
    client = FakeMailClient()
    manager = _manager(user_store, client=client)

    assert manager.create_authenticated_client("user42") is client
    assert client.profile_calls == 1


def test_create_client_uses_refreshed_credential(user_store):
    user_store.write("user42", {"expiry_ms": NOW_MS + MINUTE_MS})
    seen = []
    manager = TokenManager(
        user_store,
        FakeRefresher(),
        client_factory=lambda credential: seen.append(credential) or FakeMailClient(),
        clock=lambda: NOW_MS,
    )
    manager.create_authenticated_client("user42")

    assert seen[0].access_token == "new-access"
    assert user_store.read("user42").credential.access_token == "new-access"


def test_authenticate_returns_profile(user_store):
    client = FakeMailClient()
    manager = _manager(user_store, client=client)

    got, profile = manager.authenticate("user42")

    assert got is client
    assert profile == {"emailAddress": "user42@example.org"}
    assert client.profile_calls == 1


def test_create_client_unknown_user():
    with pytest.raises(UserNotFound):
        _manager().create_authenticated_client("ghost")


def test_profile_check_failure_is_surfaced(user_store):
    client = FakeMailClient()
    client.get_profile = mock.Mock(side_effect=http_error(401))
    with pytest.raises(Exception) as exc_info:
        _manager(user_store, client=client).create_authenticated_client("user42")
    assert exc_info.value.resp.status == 401


def test_concurrent_clients_share_one_refresh(user_store):
    """Concurrent callers for one user collapse into a single refresh grant."""
    user_store.write("user42", {"expiry_ms": NOW_MS - 1})
    refresher = FakeRefresher()
    manager = _manager(user_store, refresher)

    threads = [
        threading.Thread(target=manager.create_authenticated_client, args=("user42",))
        for _ in range(5)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert refresher.calls == ["refresh"]


# --- GoogleTokenRefresher ---

_CONFIG = {"client_id": "cid", "client_secret": "secret", "token_uri": "https://example/token"}


def test_google_refresher_success():
    def fake_refresh(self, request):
        self.token = "fresh"
        self.expiry = datetime(2030, 1, 1)

    with mock.patch("signup_scanner.auth.Credentials.refresh", fake_refresh):
        grant = GoogleTokenRefresher(_CONFIG, request_factory=mock.Mock).refresh("old")

    assert grant.access_token == "fresh"
    assert grant.refresh_token is None
    assert grant.expiry_ms == 1893456000000


def test_google_refresher_invalid_grant():
    error = RefreshError("invalid_grant: Token has been expired or revoked.")
    with mock.patch("signup_scanner.auth.Credentials.refresh", side_effect=error):
        with pytest.raises(InvalidGrant):
            GoogleTokenRefresher(_CONFIG, request_factory=mock.Mock).refresh("old")


@pytest.mark.parametrize(
    "error",
    [RefreshError("internal_failure: backend error"), TransportError("connection reset")],
)
def test_google_refresher_transient(error):
    with mock.patch("signup_scanner.auth.Credentials.refresh", side_effect=error):
        with pytest.raises(TokenRefreshTransient):
            GoogleTokenRefresher(_CONFIG, request_factory=mock.Mock).refresh("old")


def test_load_client_config(tmp_path):
    path = tmp_path / "credentials.json"
    path.write_text('{"installed": {"client_id": "cid", "client_secret": "s"}}')
    config = load_client_config(path)
    assert config["client_id"] == "cid"
    assert config["token_uri"] == "https://oauth2.googleapis.com/token"


def test_load_client_config_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_client_config(tmp_path / "nope.json")
