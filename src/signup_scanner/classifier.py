"""Classification of message senders into known platforms."""

from __future__ import annotations

import math
import re

from .constants import (
    FALLBACK_CONFIDENCE,
    GENERATED_CONFIDENCE,
    GENERIC_DOMAIN_PREFIXES,
    KEYWORD_MIN_SCORE,
)
from .models import (
    AliasMatch,
    Category,
    ClassificationResult,
    DetectionMethod,
    DirectMatch,
    Fallback,
    Generated,
    KeywordMatch,
    PlatformMatch,
)
from .platforms import DEFAULT_REGISTRY, PlatformRegistry


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_domain(domain: str | None) -> str:
    return (domain or "").lower().strip()


def match_direct(domain: str, registry: PlatformRegistry) -> DirectMatch | None:
    platform = registry.platforms.get(domain)
    if platform is None:
        return None
    return DirectMatch(platform.name, domain, platform.category, platform.confidence)


def match_alias(domain: str, registry: PlatformRegistry) -> AliasMatch | None:
    if not domain:
        return None
    for platform in registry.platforms.values():
        for alias in platform.aliases:
            if alias in domain:
                return AliasMatch(
                    platform.name, domain, platform.category, platform.confidence, alias
                )
    return None


def match_keywords(domain: str, text: str, registry: PlatformRegistry) -> KeywordMatch | None:
    """Score every platform by the share of its keywords found in ``text``.

    Only a strictly higher score replaces the current best, so ties go to
    the platform declared first.  The best score must exceed
    KEYWORD_MIN_SCORE to count.
    """
    best: KeywordMatch | None = None
    for platform in registry.platforms.values():
        if not platform.keywords:
            continue
        matched = sum(1 for k in set(platform.keywords) if k in text)
        if not matched:
            continue
        score = matched * platform.confidence / len(set(platform.keywords))
        if score > KEYWORD_MIN_SCORE and (best is None or score > best.score):
            best = KeywordMatch(platform.name, domain, platform.category, score, matched)
    return best


def generate_from_domain(domain: str) -> Generated | Fallback:
    """Derive a display name from the domain's first meaningful label.

    ``mail.example.com`` gives "Example", ``my-shop.io`` gives "My shop".
    Only a domain with no usable label yields a Fallback.
    """
    if not domain:
        return Fallback(domain)

    parts = domain.split(".")
    label = parts[0]
    if label in GENERIC_DOMAIN_PREFIXES and len(parts) > 1:
        label = parts[1]

    label = re.sub(r"[-_]", " ", label).strip()
    if not label:
        return Fallback(domain)

    return Generated(label[0].upper() + label[1:].lower(), domain)


def to_result(match: PlatformMatch) -> ClassificationResult:
    """Flatten a match variant into the result shape used downstream."""
    if isinstance(match, DirectMatch):
        return ClassificationResult(
            match.name, match.domain, match.category, match.confidence, DetectionMethod.DIRECT_MATCH
        )
    if isinstance(match, AliasMatch):
        return ClassificationResult(
            match.name, match.domain, match.category, match.confidence, DetectionMethod.ALIAS_MATCH
        )
    if isinstance(match, KeywordMatch):
        return ClassificationResult(
            match.name,
            match.domain,
            match.category,
            _round_half_up(match.score),
            DetectionMethod.KEYWORD_MATCH,
        )
    if isinstance(match, Generated):
        return ClassificationResult(
            match.name,
            match.domain,
            Category.OTHER,
            GENERATED_CONFIDENCE,
            DetectionMethod.DOMAIN_GENERATION,
        )
    return ClassificationResult(
        "Unknown", match.domain, Category.OTHER, FALLBACK_CONFIDENCE, DetectionMethod.FALLBACK
    )


def detect_platform(
    domain: str,
    from_header: str = "",
    subject: str = "",
    snippet: str = "",
    registry: PlatformRegistry = DEFAULT_REGISTRY,
) -> PlatformMatch:
    """Run the matching steps in order and return the first variant that applies."""
    normalized = normalize_domain(domain)
    text = f"{from_header or ''} {subject or ''} {snippet or ''}".lower()

    return (
        match_direct(normalized, registry)
        or match_alias(normalized, registry)
        or match_keywords(normalized, text, registry)
        or generate_from_domain(normalized)
    )


def classify_platform(
    domain: str,
    from_header: str = "",
    subject: str = "",
    snippet: str = "",
    registry: PlatformRegistry = DEFAULT_REGISTRY,
) -> ClassificationResult:
    """Classify a sender domain into a platform with a 0-100 confidence."""
    return to_result(detect_platform(domain, from_header, subject, snippet, registry))
