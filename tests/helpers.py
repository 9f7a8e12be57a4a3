"""Fakes and builders shared by the tests."""

from __future__ import annotations

import threading

import httplib2
from googleapiclient.errors import HttpError

from signup_scanner.models import MessageDetail, MessagePage, MessageStub, TokenGrant

NOW_MS = 1_700_000_000_000
HOUR_MS = 60 * 60 * 1000


def http_error(status: int, content: bytes = b"") -> HttpError:
    return HttpError(httplib2.Response({"status": status}), content)


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = NOW_MS / 1000) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMailClient:
    """In-memory mail API: a list of pages plus details by id."""

    def __init__(self, pages=None, details=None, failures=None) -> None:
        self.pages: list[MessagePage] = pages or []
        self.details: dict[str, MessageDetail] = details or {}
        # message id -> list of exceptions raised before succeeding
        self.failures: dict[str, list[Exception]] = failures or {}
        self.list_calls: list[tuple] = []
        self.get_calls: list[str] = []
        self.profile_calls = 0
        self._lock = threading.Lock()

    def list_messages(self, query, max_results, page_token=None) -> MessagePage:
        with self._lock:
            self.list_calls.append((query, max_results, page_token))
        index = int(page_token) if page_token else 0
        if index >= len(self.pages):
            return MessagePage()
        page = self.pages[index]
        return MessagePage(stubs=page.stubs[:max_results], next_page_token=page.next_page_token)

    def get_message(self, message_id) -> MessageDetail:
        with self._lock:
            self.get_calls.append(message_id)
            pending = self.failures.get(message_id)
            if pending:
                raise pending.pop(0)
        return self.details[message_id]

    def get_profile(self) -> dict:
        self.profile_calls += 1
        return {"emailAddress": "user42@example.org"}


class FakeRefresher:
    def __init__(self, grant: TokenGrant | None = None, error: Exception | None = None) -> None:
        self.grant = grant or TokenGrant(access_token="new-access", expiry_ms=NOW_MS + HOUR_MS)
        self.error = error
        self.calls: list[str] = []

    def refresh(self, refresh_token: str) -> TokenGrant:
        self.calls.append(refresh_token)
        if self.error is not None:
            raise self.error
        return self.grant


def make_detail(msg_id: str, sender: str, subject: str = "Welcome!", snippet: str = "", date: str = "") -> MessageDetail:
    return MessageDetail(id=msg_id, from_header=sender, subject=subject, date=date, snippet=snippet)


def one_page(*ids: str) -> list[MessagePage]:
    return [MessagePage(stubs=[MessageStub(id=i) for i in ids], next_page_token=None)]
