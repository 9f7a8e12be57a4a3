"""Shared fixtures for tests."""

from __future__ import annotations

import pytest

from helpers import HOUR_MS, NOW_MS, FakeClock, FakeMailClient, FakeRefresher
from signup_scanner.auth import TokenManager
from signup_scanner.cache import TTLCache
from signup_scanner.gmail_client import RetryPolicy
from signup_scanner.scanner import ScanPipeline, ScanSettings
from signup_scanner.store import InMemoryUserStore


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def user_store() -> InMemoryUserStore:
    store = InMemoryUserStore()
    store.write(
        "user42",
        {
            "email": "user42@example.org",
            "access_token": "access",
            "refresh_token": "refresh",
            "expiry_ms": NOW_MS + HOUR_MS,
        },
    )
    return store


@pytest.fixture
def refresher() -> FakeRefresher:
    return FakeRefresher()


@pytest.fixture
def mail_client() -> FakeMailClient:
    return FakeMailClient()


@pytest.fixture
def token_manager(user_store, refresher, mail_client) -> TokenManager:
    return TokenManager(
        user_store,
        refresher,
        client_factory=lambda credential: mail_client,
        clock=lambda: NOW_MS,
    )


@pytest.fixture
def no_wait_settings() -> ScanSettings:
    return ScanSettings(
        page_delay=0,
        chunk_delay=0,
        retry=RetryPolicy(max_retries=3, base_delay=0, sleep=lambda s: None),
    )


@pytest.fixture
def pipeline(token_manager, clock, no_wait_settings) -> ScanPipeline:
    return ScanPipeline(
        token_manager,
        TTLCache(clock=clock),
        settings=no_wait_settings,
        sleep=lambda s: None,
    )
