"""Tests for the platform classifier."""

import pytest

from signup_scanner.classifier import (
    classify_platform,
    detect_platform,
    generate_from_domain,
    to_result,
)
from signup_scanner.models import (
    Category,
    DetectionMethod,
    DirectMatch,
    Fallback,
    Generated,
    KeywordMatch,
)
from signup_scanner.platforms import Platform, PlatformRegistry


def _registry(*entries: tuple[str, Platform]) -> PlatformRegistry:
    return PlatformRegistry(platforms=dict(entries))


def test_netflix_direct_match():
    result = classify_platform(
        "netflix.com", "Netflix <no-reply@netflix.com>", "Welcome to Netflix!"
    )
    assert result.platform_name == "Netflix"
    assert result.category is Category.ENTERTAINMENT
    assert result.confidence == 95
    assert result.detection_method is DetectionMethod.DIRECT_MATCH
    assert result.domain == "netflix.com"


def test_direct_match_is_case_insensitive():
    result = classify_platform("  GitHub.COM ")
    assert result.platform_name == "GitHub"
    assert result.domain == "github.com"
    assert result.detection_method is DetectionMethod.DIRECT_MATCH


def test_alias_match():
    result = classify_platform("mail.facebookmail.com")
    assert result.platform_name == "Facebook"
    assert result.confidence == 95
    assert result.detection_method is DetectionMethod.ALIAS_MATCH


def test_alias_match_uses_base_confidence():
    result = classify_platform("store.myshopify.com")
    assert result.platform_name == "Shopify"
    assert result.confidence == 85


def test_keyword_match():
    """Three of four Stripe keywords: 3/4 * 90 = 67.5, rounded to 68."""
    result = classify_platform(
        "billing.acmepay.io",
        "Billing <billing@acmepay.io>",
        "Stripe subscription invoice",
    )
    assert result.platform_name == "Stripe"
    assert result.detection_method is DetectionMethod.KEYWORD_MATCH
    assert result.confidence == 68
    assert result.domain == "billing.acmepay.io"


def test_keyword_confidence_below_base():
    result = classify_platform(
        "news.somecdn.net", subject="Your playlist and podcast picks from spotify"
    )
    assert result.detection_method is DetectionMethod.KEYWORD_MATCH
    assert result.confidence < 95


def test_keyword_score_exactly_30_rejected():
    registry = _registry(
        ("alpha.com", Platform("Alpha", Category.SOCIAL, ("alpha", "beta", "gamma"), 90)),
    )
    result = classify_platform("unrelated.org", subject="alpha news", registry=registry)
    assert result.detection_method is DetectionMethod.DOMAIN_GENERATION
    assert result.confidence == 40


def test_keyword_score_31_accepted():
    registry = _registry(
        ("alpha.com", Platform("Alpha", Category.SOCIAL, ("alpha", "beta", "gamma"), 93)),
    )
    result = classify_platform("unrelated.org", subject="alpha news", registry=registry)
    assert result.detection_method is DetectionMethod.KEYWORD_MATCH
    assert result.confidence == 31


def test_keyword_tie_goes_to_first_declared():
    registry = _registry(
        ("first.com", Platform("First", Category.SOCIAL, ("shared", "one"), 80)),
        ("second.com", Platform("Second", Category.EDUCATION, ("shared", "two"), 80)),
    )
    result = classify_platform("other.org", subject="shared", registry=registry)
    assert result.platform_name == "First"
    assert result.confidence == 40


def test_keyword_highest_score_wins():
    registry = _registry(
        ("first.com", Platform("First", Category.SOCIAL, ("shared", "one"), 70)),
        ("second.com", Platform("Second", Category.EDUCATION, ("shared", "two"), 90)),
    )
    result = classify_platform("other.org", subject="shared", registry=registry)
    assert result.platform_name == "Second"


def test_keyword_counts_distinct_keywords():
    registry = _registry(
        ("alpha.com", Platform("Alpha", Category.SOCIAL, ("alpha", "beta"), 90)),
    )
    match = detect_platform("x.org", subject="alpha alpha alpha", registry=registry)
    assert isinstance(match, KeywordMatch)
    assert match.matched_keywords == 1
    assert match.score == 45


def test_domain_generation_fallback():
    result = classify_platform("acme-widgets.io", subject="hello there")
    assert result.platform_name == "Acme widgets"
    assert result.category is Category.OTHER
    assert result.confidence == 40
    assert result.detection_method is DetectionMethod.DOMAIN_GENERATION


@pytest.mark.parametrize(
    "domain, expected",
    [
        ("mail.example.com", "Example"),
        ("noreply.foo_bar.com", "Foo bar"),
        ("team.example.com", "Example"),
        ("newsletters.example.com", "Newsletters"),
        ("mail", "Mail"),
        ("bücher.de", "Bücher"),
    ],
)
def test_generated_names(domain, expected):
    match = generate_from_domain(domain)
    assert isinstance(match, Generated)
    assert match.name == expected


@pytest.mark.parametrize("domain", ["", "   ", ".example.com", "-.example.com", "mail._"])
def test_hard_fallback(domain):
    result = classify_platform(domain)
    assert result.platform_name == "Unknown"
    assert result.confidence == 20
    assert result.category is Category.OTHER
    assert result.detection_method is DetectionMethod.FALLBACK


def test_none_inputs_degrade_to_fallback():
    result = classify_platform(None, None, None, None)
    assert result.detection_method is DetectionMethod.FALLBACK


def test_classification_is_deterministic():
    args = ("netflix.com", "Netflix <no-reply@netflix.com>", "Welcome to Netflix!")
    assert {classify_platform(*args) for _ in range(5)} == {classify_platform(*args)}


def test_to_result_variants():
    assert to_result(DirectMatch("A", "a.com", Category.SOCIAL, 90)).confidence == 90
    assert to_result(Fallback("")).confidence == 20
    keyword = to_result(KeywordMatch("A", "a.com", Category.SOCIAL, 42.5, 1))
    assert keyword.confidence == 43
    assert keyword.detection_method is DetectionMethod.KEYWORD_MATCH


def test_non_ascii_domain_is_generated():
    result = classify_platform("bücher.de", subject="Ihre Bestellung")
    assert result.platform_name == "Bücher"
    assert result.confidence == 40
    assert result.detection_method is DetectionMethod.DOMAIN_GENERATION
