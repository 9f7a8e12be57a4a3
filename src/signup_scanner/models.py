"""Data models for Signup Scanner."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Union


class Category(str, Enum):
    """Closed set of platform categories."""

    SOCIAL = "social"
    ECOMMERCE = "ecommerce"
    ENTERTAINMENT = "entertainment"
    FINANCIAL = "financial"
    DEVELOPMENT = "development"
    EDUCATION = "education"
    PROFESSIONAL = "professional"
    PRODUCTIVITY = "productivity"
    COMMUNICATION = "communication"
    NEWSLETTER = "newsletter"
    MARKETING = "marketing"
    OTHER = "other"


class DetectionMethod(str, Enum):
    DIRECT_MATCH = "direct_match"
    ALIAS_MATCH = "alias_match"
    KEYWORD_MATCH = "keyword_match"
    DOMAIN_GENERATION = "domain_generation"
    FALLBACK = "fallback"


@dataclass
class Credential:
    """OAuth credential for one user. Times are epoch milliseconds."""

    access_token: str | None
    refresh_token: str | None = None
    expiry_ms: int | None = None
    last_refreshed_at: int | None = None


@dataclass
class UserRecord:
    """A user as held by the user store."""

    user_id: str
    email: str = ""
    credential: Credential = field(default_factory=lambda: Credential(access_token=None))


@dataclass
class TokenGrant:
    """Result of a refresh-token grant. refresh_token is None when not rotated."""

    access_token: str
    expiry_ms: int | None
    refresh_token: str | None = None


@dataclass
class RefreshOutcome:
    credential: Credential
    was_refreshed: bool


@dataclass
class MessageStub:
    id: str


@dataclass
class MessagePage:
    """One page of a message listing."""

    stubs: list[MessageStub] = field(default_factory=list)
    next_page_token: str | None = None


@dataclass
class MessageDetail:
    """Metadata of a single message: headers and snippet only."""

    id: str
    from_header: str = ""
    subject: str = ""
    date: str = ""
    snippet: str = ""


@dataclass(frozen=True)
class ClassificationResult:
    platform_name: str
    domain: str
    category: Category
    confidence: int
    detection_method: DetectionMethod


# --- Match variants produced by the classifier ---


@dataclass(frozen=True)
class DirectMatch:
    name: str
    domain: str
    category: Category
    confidence: int


@dataclass(frozen=True)
class AliasMatch:
    name: str
    domain: str
    category: Category
    confidence: int
    alias: str


@dataclass(frozen=True)
class KeywordMatch:
    name: str
    domain: str
    category: Category
    score: float
    matched_keywords: int


@dataclass(frozen=True)
class Generated:
    name: str
    domain: str


@dataclass(frozen=True)
class Fallback:
    domain: str


PlatformMatch = Union[DirectMatch, AliasMatch, KeywordMatch, Generated, Fallback]


@dataclass
class ServiceRecord:
    """One detected signup service, unique per domain within a scan."""

    platform: str
    domain: str
    email: str
    category: Category
    confidence: int
    detection_method: DetectionMethod
    subject: str = ""
    date: str = ""
    message_id: str = ""
    snippet: str = ""
    last_seen: str = field(default_factory=lambda: datetime.now().isoformat())


@dataclass
class ScanResult:
    """Result of a mailbox scan."""

    user_id: str
    query: str = ""
    services: list[ServiceRecord] = field(default_factory=list)
    total_messages: int = 0
    fetched: int = 0
    skipped: int = 0
    scan_date: str = field(default_factory=lambda: datetime.now().isoformat())
