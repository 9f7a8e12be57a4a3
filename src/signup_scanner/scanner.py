"""Scan orchestration - lists messages, fetches metadata, classifies senders."""

from __future__ import annotations

import copy
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from .cache import TTLCache, invalidate_user, scan_key, services_key
from .classifier import classify_platform
from .constants import (
    CHUNK_DELAY,
    DEFAULT_MAX_MESSAGES,
    DEFAULT_SIGNUP_QUERY,
    DETAIL_CHUNK_SIZE,
    INCREMENTAL_LOOKBACK_DAYS,
    INCREMENTAL_MAX_MESSAGES,
    PAGE_DELAY,
    PAGE_SIZE,
    SCAN_TTL,
    SERVICES_TTL,
    SIGNUP_TERMS,
    SNIPPET_LIMIT,
    SUBJECT_LIMIT,
)
from .gmail_client import MailClient, RetryPolicy, extract_domain, is_service_domain, parse_from_header
from .models import ClassificationResult, MessageDetail, MessageStub, ScanResult, ServiceRecord

logger = logging.getLogger(__name__)

Classifier = Callable[[str, str, str, str], ClassificationResult]
ProgressCallback = Callable[[int, int], None]


@dataclass
class ScanSettings:
    page_size: int = PAGE_SIZE
    chunk_size: int = DETAIL_CHUNK_SIZE
    page_delay: float = PAGE_DELAY
    chunk_delay: float = CHUNK_DELAY
    scan_ttl: int = SCAN_TTL
    services_ttl: int = SERVICES_TTL
    retry: RetryPolicy = field(default_factory=RetryPolicy)


def chunked(items: list, size: int) -> list[list]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def build_service_record(
    detail: MessageDetail, classifier: Classifier = classify_platform
) -> ServiceRecord | None:
    """Classify one message into a ServiceRecord, or None if its sender is not a service."""
    _, email = parse_from_header(detail.from_header)
    domain = extract_domain(email)
    if not is_service_domain(domain):
        return None

    result = classifier(domain, detail.from_header, detail.subject, detail.snippet)
    return ServiceRecord(
        platform=result.platform_name,
        domain=result.domain,
        email=email,
        category=result.category,
        confidence=result.confidence,
        detection_method=result.detection_method,
        subject=detail.subject[:SUBJECT_LIMIT],
        date=detail.date,
        message_id=detail.id,
        snippet=detail.snippet[:SNIPPET_LIMIT],
    )


def dedupe_by_domain(
    details: Iterable[MessageDetail],
    classifier: Classifier = classify_platform,
    services: dict[str, ServiceRecord] | None = None,
) -> dict[str, ServiceRecord]:
    """Fold messages into one ServiceRecord per domain; the first message seen wins."""
    services = {} if services is None else services

    for detail in details:
        _, email = parse_from_header(detail.from_header)
        domain = extract_domain(email)
        if not is_service_domain(domain) or domain in services:
            continue
        record = build_service_record(detail, classifier)
        if record is not None:
            services[domain] = record
            logger.debug("Found service: %s (%s)", record.platform, domain)

    return services


def incremental_query(last_sync: datetime | None = None, now: datetime | None = None) -> str:
    """Build a signup query limited to messages newer than ``last_sync``."""
    now = now or datetime.now(timezone.utc)
    since = last_sync or (now - timedelta(days=INCREMENTAL_LOOKBACK_DAYS))
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    return f"after:{int(since.timestamp())} ({' OR '.join(SIGNUP_TERMS)})"


class ScanPipeline:
    """Runs one mailbox scan for one user.

    Pages through the listing, fetches message metadata a chunk at a time,
    classifies each sender and keeps the first message per domain.  Only a
    completed scan is written to the cache, and cached results are copied
    in and out so callers never share them.
    """

    def __init__(
        self,
        token_manager,
        cache: TTLCache,
        classifier: Classifier = classify_platform,
        settings: ScanSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.token_manager = token_manager
        self.cache = cache
        self.classifier = classifier
        self.settings = settings or ScanSettings()
        self._sleep = sleep

    # --- public API ---

    def scan(
        self,
        user_id: str,
        query: str = DEFAULT_SIGNUP_QUERY,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        force_refresh: bool = False,
        on_page: ProgressCallback | None = None,
        on_chunk: ProgressCallback | None = None,
    ) -> ScanResult:
        """Scan a user's mailbox and return the unique services found.

        ``on_page(listed, max_messages)`` runs after every listing page and
        ``on_chunk(chunk_num, total_chunks)`` after every detail chunk.
        """
        key = scan_key(user_id, query, max_messages)
        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                logger.info("Returning cached scan for %s (%d services)", user_id, len(cached.services))
                return copy.deepcopy(cached)

        client = self.token_manager.create_authenticated_client(user_id)

        logger.info("Starting scan for %s (max %d messages)", user_id, max_messages)
        try:
            stubs = self.list_stubs(client, query, max_messages, callback=on_page)
            details, skipped = self.fetch_details(client, stubs, callback=on_chunk)
        except Exception:
            logger.error("Scan aborted for %s", user_id, exc_info=True)
            raise

        services = dedupe_by_domain(details, self.classifier)
        result = ScanResult(
            user_id=user_id,
            query=query,
            services=list(services.values()),
            total_messages=len(stubs),
            fetched=len(details),
            skipped=skipped,
        )

        self.cache.set(key, copy.deepcopy(result), self.settings.scan_ttl)
        self.cache.set(
            services_key(user_id), copy.deepcopy(result.services), self.settings.services_ttl
        )

        logger.info(
            "Scan complete for %s: %d messages, %d services, %d skipped",
            user_id,
            len(stubs),
            len(result.services),
            skipped,
        )
        return result

    def incremental_scan(
        self,
        user_id: str,
        last_sync: datetime | None = None,
        max_messages: int = INCREMENTAL_MAX_MESSAGES,
        force_refresh: bool = True,
        on_page: ProgressCallback | None = None,
        on_chunk: ProgressCallback | None = None,
    ) -> ScanResult:
        """Scan only signup messages received after ``last_sync`` (default 30 days back).

        The cache is bypassed unless ``force_refresh`` is set to False.
        """
        return self.scan(
            user_id,
            query=incremental_query(last_sync),
            max_messages=max_messages,
            force_refresh=force_refresh,
            on_page=on_page,
            on_chunk=on_chunk,
        )

    def latest_services(self, user_id: str) -> list[ServiceRecord] | None:
        """Return the services from the user's most recent cached scan, if any."""
        return copy.deepcopy(self.cache.get(services_key(user_id)))

    def invalidate(self, user_id: str) -> int:
        return invalidate_user(self.cache, user_id)

    # --- steps ---

    def list_stubs(
        self,
        client: MailClient,
        query: str,
        max_messages: int,
        callback: ProgressCallback | None = None,
    ) -> list[MessageStub]:
        """Page through the listing until it ends or ``max_messages`` stubs are collected."""
        stubs: list[MessageStub] = []
        page_token: str | None = None
        page_num = 0

        while len(stubs) < max_messages:
            remaining = max_messages - len(stubs)
            page = self.settings.retry.call(
                client.list_messages,
                query,
                min(self.settings.page_size, remaining),
                page_token,
            )
            page_num += 1
            if not page.stubs:
                break

            stubs.extend(page.stubs[:remaining])
            page_token = page.next_page_token
            logger.debug(
                "Fetched page %d: %d messages (total %d, more: %s)",
                page_num,
                len(page.stubs),
                len(stubs),
                bool(page_token),
            )
            if callback:
                callback(len(stubs), max_messages)

            if not page_token or len(stubs) >= max_messages:
                break
            self._sleep(self.settings.page_delay)

        logger.info("Listed %d messages", len(stubs))
        return stubs

    def _fetch_one(self, client: MailClient, stub: MessageStub) -> MessageDetail | None:
        try:
            return self.settings.retry.call(client.get_message, stub.id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Skipping message %s: %s", stub.id, exc)
            return None

    def fetch_details(
        self,
        client: MailClient,
        stubs: list[MessageStub],
        callback: ProgressCallback | None = None,
    ) -> tuple[list[MessageDetail], int]:
        """Fetch metadata for every stub, a chunk at a time.

        Fetches within a chunk run concurrently; results keep listing order.
        Returns the details and the number of messages skipped.
        """
        details: list[MessageDetail] = []
        skipped = 0
        chunks = chunked(stubs, self.settings.chunk_size)
        if not chunks:
            return details, skipped

        with ThreadPoolExecutor(max_workers=self.settings.chunk_size) as pool:
            for i, chunk in enumerate(chunks):
                logger.debug("Processing message chunk %d/%d", i + 1, len(chunks))
                futures = [pool.submit(self._fetch_one, client, stub) for stub in chunk]
                for future in futures:
                    detail = future.result()
                    if detail is None:
                        skipped += 1
                    else:
                        details.append(detail)

                if callback:
                    callback(i + 1, len(chunks))

                if i < len(chunks) - 1:
                    self._sleep(self.settings.chunk_delay)

        logger.info("Fetched details for %d messages (%d skipped)", len(details), skipped)
        return details, skipped
