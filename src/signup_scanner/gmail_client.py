"""Gmail API client and retry policy for fetching message metadata."""

from __future__ import annotations

import ipaddress
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, TypeVar

import httplib2
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from signup_scanner.constants import (
    EXCLUDED_DOMAINS,
    MAX_RETRIES,
    METADATA_HEADERS,
    RETRY_BASE_DELAY,
    SCOPES,
)
from signup_scanner.errors import is_retryable
from signup_scanner.models import Credential, MessageDetail, MessagePage, MessageStub

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FROM_RE = re.compile(r"^(.*?)\s*<([^>]+)>$")


class MailClient(Protocol):
    """The subset of the mail API the scanner consumes."""

    def list_messages(
        self, query: str, max_results: int, page_token: str | None = None
    ) -> MessagePage: ...

    def get_message(self, message_id: str) -> MessageDetail: ...

    def get_profile(self) -> dict: ...


@dataclass
class RetryPolicy:
    """Exponential backoff for remote calls.

    A retryable failure waits ``base_delay * 2**attempt`` (attempt from 0)
    before trying again; after ``max_retries`` retries the original
    exception is re-raised.
    """

    max_retries: int = MAX_RETRIES
    base_delay: float = RETRY_BASE_DELAY
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def _retrying(self) -> Retrying:
        return Retrying(
            retry=retry_if_exception(is_retryable),
            wait=wait_exponential(multiplier=self.base_delay, min=0, max=60),
            stop=stop_after_attempt(self.max_retries + 1),
            sleep=self.sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return self._retrying()(fn, *args, **kwargs)


def parse_from_header(from_value: str) -> tuple[str, str]:
    """Parse a From header into (display name, email address).

    Handles formats like:
      "John Doe <john@example.com>" -> ("John Doe", "john@example.com")
      "<john@example.com>"          -> ("", "john@example.com")
      "john@example.com"            -> ("", "john@example.com")
    """
    if not from_value:
        return ("", "")
    m = _FROM_RE.match(from_value.strip())
    if m:
        name = m.group(1).strip().strip('"').strip("'")
        return (name, m.group(2).strip().lower())
    email = from_value.strip().strip("<>")
    return ("", email.lower())


def extract_domain(email: str) -> str | None:
    """Return the lowercased domain of an address, or None if there is none."""
    if "@" not in email:
        return None
    domain = email.rsplit("@", 1)[1].strip().lower()
    return domain or None


def is_service_domain(domain: str | None) -> bool:
    """Return True if a domain can belong to a signup service.

    Rejects missing or malformed domains, IP literals, localhost and
    personal webmail providers.
    """
    if not domain or domain in EXCLUDED_DOMAINS:
        return False
    labels = domain.split(".")
    if len(labels) < 2 or "localhost" in labels or not all(labels):
        return False
    try:
        ipaddress.ip_address(domain.strip("[]"))
    except ValueError:
        return True
    return False


def detail_from_response(resp: dict) -> MessageDetail:
    headers: dict[str, str] = {}
    for h in resp.get("payload", {}).get("headers", []):
        headers.setdefault(h["name"].lower(), h["value"])

    return MessageDetail(
        id=resp.get("id", ""),
        from_header=headers.get("from", ""),
        subject=headers.get("subject", ""),
        date=headers.get("date", ""),
        snippet=resp.get("snippet", ""),
    )


class GmailClient:
    """Gmail API adapter bound to one access token.

    Every request executes over its own AuthorizedHttp, so one client can be
    shared by the detail-fetch worker threads.
    """

    def __init__(self, credential: Credential, service=None) -> None:
        self._credentials = Credentials(token=credential.access_token, scopes=SCOPES)
        self._service = service or build(
            "gmail", "v1", credentials=self._credentials, cache_discovery=False
        )

    def _execute(self, request) -> dict:
        return request.execute(http=AuthorizedHttp(self._credentials, http=httplib2.Http()))

    def list_messages(
        self, query: str, max_results: int, page_token: str | None = None
    ) -> MessagePage:
        kwargs: dict = {
            "userId": "me",
            "maxResults": max_results,
            "fields": "messages/id,nextPageToken",
        }
        if query:
            kwargs["q"] = query
        if page_token:
            kwargs["pageToken"] = page_token

        resp = self._execute(self._service.users().messages().list(**kwargs))
        return MessagePage(
            stubs=[MessageStub(id=m["id"]) for m in resp.get("messages", [])],
            next_page_token=resp.get("nextPageToken"),
        )

    def get_message(self, message_id: str) -> MessageDetail:
        resp = self._execute(
            self._service.users().messages().get(
                userId="me",
                id=message_id,
                format="metadata",
                metadataHeaders=METADATA_HEADERS,
            )
        )
        detail = detail_from_response(resp)
        detail.id = detail.id or message_id
        return detail

    def get_profile(self) -> dict:
        return self._execute(self._service.users().getProfile(userId="me"))
