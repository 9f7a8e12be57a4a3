"""OAuth credential lifecycle for Gmail API access."""

from __future__ import annotations

import json
import logging
import threading
import time
from datetime import timezone
from pathlib import Path
from typing import Callable, Protocol

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from signup_scanner.constants import CREDENTIALS_PATH, REFRESH_WINDOW_MS, SCOPES, TOKEN_URI
from signup_scanner.errors import (
    InvalidGrant,
    ReauthRequired,
    TokenRefreshTransient,
    UserNotFound,
)
from signup_scanner.gmail_client import GmailClient, MailClient
from signup_scanner.models import Credential, RefreshOutcome, TokenGrant, UserRecord
from signup_scanner.store import UserStore

logger = logging.getLogger(__name__)


class TokenRefresher(Protocol):
    def refresh(self, refresh_token: str) -> TokenGrant: ...


def _now_ms() -> int:
    return int(time.time() * 1000)


def _missing_credentials_error(path: Path) -> FileNotFoundError:
    return FileNotFoundError(
        f"Credentials file not found at {path}.\n"
        "Download your OAuth client credentials from the Google Cloud Console "
        "and save them as:\n"
        f"  {path}"
    )


def load_client_config(path: Path | None = None) -> dict:
    """Read client_id, client_secret and token_uri from an OAuth client file."""
    path = Path(path or CREDENTIALS_PATH)
    if not path.exists():
        raise _missing_credentials_error(path)

    data = json.loads(path.read_text())
    section = data.get("installed") or data.get("web") or data
    return {
        "client_id": section["client_id"],
        "client_secret": section["client_secret"],
        "token_uri": section.get("token_uri", TOKEN_URI),
    }


class GoogleTokenRefresher:
    """Performs refresh-token grants against Google's OAuth endpoint."""

    def __init__(self, client_config: dict, request_factory: Callable[[], Request] = Request) -> None:
        self._config = client_config
        self._request_factory = request_factory

    def refresh(self, refresh_token: str) -> TokenGrant:
        creds = Credentials(
            token=None,
            refresh_token=refresh_token,
            client_id=self._config["client_id"],
            client_secret=self._config["client_secret"],
            token_uri=self._config.get("token_uri", TOKEN_URI),
            scopes=SCOPES,
        )
        try:
            creds.refresh(self._request_factory())
        except RefreshError as exc:
            if "invalid_grant" in str(exc):
                raise InvalidGrant(str(exc)) from exc
            raise TokenRefreshTransient(str(exc)) from exc
        except TransportError as exc:
            raise TokenRefreshTransient(str(exc)) from exc

        expiry_ms = None
        if creds.expiry is not None:
            expiry_ms = int(creds.expiry.replace(tzinfo=timezone.utc).timestamp() * 1000)

        rotated = creds.refresh_token if creds.refresh_token != refresh_token else None
        return TokenGrant(access_token=creds.token, expiry_ms=expiry_ms, refresh_token=rotated)


class TokenManager:
    """Keeps each user's access token valid and hands out authenticated clients.

    Tokens within ``refresh_window_ms`` of expiry are refreshed before use and
    the result is written back to the user store, which stays the single
    source of truth.  Refreshes for one user are serialized, so concurrent
    scans of that user share a single grant.
    """

    def __init__(
        self,
        user_store: UserStore,
        refresher: TokenRefresher,
        client_factory: Callable[[Credential], MailClient] = GmailClient,
        clock: Callable[[], int] = _now_ms,
        refresh_window_ms: int = REFRESH_WINDOW_MS,
    ) -> None:
        self.user_store = user_store
        self.refresher = refresher
        self.client_factory = client_factory
        self._clock = clock
        self.refresh_window_ms = refresh_window_ms
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _user_lock(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(user_id, threading.Lock())

    def needs_refresh(self, credential: Credential) -> bool:
        if credential.expiry_ms is None:
            return False
        return credential.expiry_ms - self._clock() <= self.refresh_window_ms

    def validate_and_refresh(self, user: UserRecord) -> RefreshOutcome:
        """Return a usable credential for ``user``, refreshing it if it expires soon.

        Raises ReauthRequired when the user has no usable tokens or the
        provider rejects the refresh token, and TokenRefreshTransient when
        the grant failed for any other reason.
        """
        cred = user.credential
        if not cred.access_token:
            raise ReauthRequired(user.user_id, "no access token available")
        if not cred.refresh_token:
            raise ReauthRequired(user.user_id, "no refresh token available")

        if not self.needs_refresh(cred):
            return RefreshOutcome(credential=cred, was_refreshed=False)

        logger.info("Token for %s expired or expiring soon, refreshing", user.user_id)
        try:
            grant = self.refresher.refresh(cred.refresh_token)
        except InvalidGrant as exc:
            logger.warning("Refresh token rejected for %s", user.user_id)
            raise ReauthRequired(user.user_id, "refresh token invalid or expired") from exc
        except TokenRefreshTransient:
            logger.error("Token refresh failed for %s", user.user_id)
            raise

        refreshed_at = self._clock()
        fields = {
            "access_token": grant.access_token,
            "expiry_ms": grant.expiry_ms,
            "last_refreshed_at": refreshed_at,
        }
        if grant.refresh_token:
            fields["refresh_token"] = grant.refresh_token
        self.user_store.write(user.user_id, fields)

        logger.info("Access token refreshed for %s", user.user_id)
        return RefreshOutcome(
            credential=Credential(
                access_token=grant.access_token,
                refresh_token=grant.refresh_token or cred.refresh_token,
                expiry_ms=grant.expiry_ms,
                last_refreshed_at=refreshed_at,
            ),
            was_refreshed=True,
        )

    def create_authenticated_client(self, user_id: str) -> MailClient:
        """Return a mail client for ``user_id`` whose credential was just verified."""
        client, _ = self.authenticate(user_id)
        return client

    def authenticate(self, user_id: str) -> tuple[MailClient, dict]:
        """Like create_authenticated_client, also returning the mailbox profile it fetched."""
        with self._user_lock(user_id):
            user = self.user_store.read(user_id)
            if user is None:
                raise UserNotFound(user_id)
            outcome = self.validate_and_refresh(user)

        client = self.client_factory(outcome.credential)
        profile = client.get_profile()
        return client, profile


def run_consent_flow(
    user_store: UserStore, user_id: str | None = None, credentials_path: Path | None = None
) -> str:
    """Run the installed-app OAuth flow and store the resulting tokens.

    The user id defaults to the mailbox address.  Returns the user id.
    """
    path = Path(credentials_path or CREDENTIALS_PATH)
    if not path.exists():
        raise _missing_credentials_error(path)

    flow = InstalledAppFlow.from_client_secrets_file(str(path), SCOPES)
    creds = flow.run_local_server(port=0)

    credential = Credential(access_token=creds.token, refresh_token=creds.refresh_token)
    email = GmailClient(credential).get_profile().get("emailAddress", "")
    user_id = user_id or email

    fields = {"email": email, "access_token": creds.token, "last_refreshed_at": _now_ms()}
    if creds.refresh_token:
        fields["refresh_token"] = creds.refresh_token
    if creds.expiry is not None:
        fields["expiry_ms"] = int(creds.expiry.replace(tzinfo=timezone.utc).timestamp() * 1000)
    user_store.write(user_id, fields)
    return user_id
