"""Registry of known signup platforms and categories."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from signup_scanner.models import Category

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Platform:
    name: str
    category: Category
    keywords: tuple[str, ...]
    confidence: int
    aliases: tuple[str, ...] = ()
    color: str = "#6B7280"
    unsubscribe_support: str = "unknown"  # "link", "manual" or "unknown"


@dataclass(frozen=True)
class CategoryInfo:
    name: str
    description: str
    priority: int


# Declaration order matters: alias lookups and keyword ties resolve to the
# first platform declared.
BUILTIN_PLATFORMS: dict[str, Platform] = {
    # Social
    "facebook.com": Platform(
        name="Facebook",
        category=Category.SOCIAL,
        aliases=("facebookmail.com", "facebook.net"),
        keywords=("facebook", "meta", "friend request", "notification", "timeline"),
        confidence=95,
        color="#1877f2",
        unsubscribe_support="manual",
    ),
    "instagram.com": Platform(
        name="Instagram",
        category=Category.SOCIAL,
        aliases=("instagrammail.com",),
        keywords=("instagram", "photo", "story", "follow", "like"),
        confidence=95,
        color="#E4405F",
        unsubscribe_support="manual",
    ),
    "linkedin.com": Platform(
        name="LinkedIn",
        category=Category.PROFESSIONAL,
        aliases=("linkedinlabs.com",),
        keywords=("linkedin", "connection", "job", "professional", "network"),
        confidence=95,
        color="#0077B5",
        unsubscribe_support="link",
    ),
    "twitter.com": Platform(
        name="Twitter",
        category=Category.SOCIAL,
        aliases=("x.com",),
        keywords=("twitter", "tweet", "follow", "notification"),
        confidence=95,
        color="#1DA1F2",
        unsubscribe_support="manual",
    ),
    # Entertainment
    "netflix.com": Platform(
        name="Netflix",
        category=Category.ENTERTAINMENT,
        aliases=("netflix.net",),
        keywords=("netflix", "streaming", "watch", "series", "movie"),
        confidence=95,
        color="#E50914",
        unsubscribe_support="link",
    ),
    "spotify.com": Platform(
        name="Spotify",
        category=Category.ENTERTAINMENT,
        aliases=("spotifymail.com",),
        keywords=("spotify", "music", "playlist", "premium", "podcast"),
        confidence=95,
        color="#1DB954",
        unsubscribe_support="link",
    ),
    "youtube.com": Platform(
        name="YouTube",
        category=Category.ENTERTAINMENT,
        aliases=("youtubemail.com",),
        keywords=("youtube", "video", "channel", "subscribe"),
        confidence=95,
        color="#FF0000",
        unsubscribe_support="manual",
    ),
    # E-commerce
    "amazon.com": Platform(
        name="Amazon",
        category=Category.ECOMMERCE,
        aliases=("amazon.co.uk", "amazon.in", "amazonses.com", "amazon.de"),
        keywords=("amazon", "order", "delivery", "prime", "shipment"),
        confidence=90,
        color="#FF9900",
        unsubscribe_support="link",
    ),
    "flipkart.com": Platform(
        name="Flipkart",
        category=Category.ECOMMERCE,
        aliases=("flipkart.net",),
        keywords=("flipkart", "order", "delivery", "sale", "offer"),
        confidence=90,
        color="#047BD6",
        unsubscribe_support="link",
    ),
    "shopify.com": Platform(
        name="Shopify",
        category=Category.ECOMMERCE,
        aliases=("myshopify.com",),
        keywords=("shopify", "store", "purchase", "order"),
        confidence=85,
        color="#7AB55C",
        unsubscribe_support="link",
    ),
    # Financial
    "paypal.com": Platform(
        name="PayPal",
        category=Category.FINANCIAL,
        aliases=("paypal.co.uk", "paypal.in"),
        keywords=("paypal", "payment", "transfer", "money", "invoice"),
        confidence=95,
        color="#003087",
        unsubscribe_support="link",
    ),
    "stripe.com": Platform(
        name="Stripe",
        category=Category.FINANCIAL,
        keywords=("stripe", "payment", "invoice", "subscription"),
        confidence=90,
        color="#635BFF",
        unsubscribe_support="link",
    ),
    "hdfcbank.net": Platform(
        name="HDFC Bank",
        category=Category.FINANCIAL,
        keywords=("hdfc", "bank", "account", "statement", "transaction"),
        confidence=95,
        color="#004C8F",
        unsubscribe_support="manual",
    ),
    "kotak.com": Platform(
        name="Kotak Bank",
        category=Category.FINANCIAL,
        keywords=("kotak", "bank", "account", "statement"),
        confidence=95,
        color="#ED1C24",
        unsubscribe_support="manual",
    ),
    # Development
    "github.com": Platform(
        name="GitHub",
        category=Category.DEVELOPMENT,
        aliases=("github.net",),
        keywords=("github", "repository", "pull request", "commit", "code"),
        confidence=95,
        color="#333",
        unsubscribe_support="link",
    ),
    "gitlab.com": Platform(
        name="GitLab",
        category=Category.DEVELOPMENT,
        keywords=("gitlab", "repository", "merge request", "pipeline"),
        confidence=90,
        color="#FC6D26",
        unsubscribe_support="link",
    ),
    "mongodb.com": Platform(
        name="MongoDB",
        category=Category.DEVELOPMENT,
        keywords=("mongodb", "database", "atlas", "cluster"),
        confidence=90,
        color="#47A248",
        unsubscribe_support="link",
    ),
    # Education
    "coursera.org": Platform(
        name="Coursera",
        category=Category.EDUCATION,
        keywords=("coursera", "course", "learning", "certificate"),
        confidence=90,
        color="#0056D3",
        unsubscribe_support="link",
    ),
    "udemy.com": Platform(
        name="Udemy",
        category=Category.EDUCATION,
        keywords=("udemy", "course", "learning", "instructor"),
        confidence=90,
        color="#A435F0",
        unsubscribe_support="link",
    ),
    # Food delivery and careers
    "swiggy.in": Platform(
        name="Swiggy",
        category=Category.ECOMMERCE,
        keywords=("swiggy", "food", "delivery", "order"),
        confidence=90,
        color="#FC8019",
        unsubscribe_support="link",
    ),
    "zomato.com": Platform(
        name="Zomato",
        category=Category.ECOMMERCE,
        keywords=("zomato", "food", "restaurant", "delivery"),
        confidence=90,
        color="#E23744",
        unsubscribe_support="link",
    ),
    "internshala.com": Platform(
        name="Internshala",
        category=Category.EDUCATION,
        keywords=("internshala", "internship", "job", "career"),
        confidence=85,
        color="#00A5EC",
        unsubscribe_support="link",
    ),
}

CATEGORIES: dict[Category, CategoryInfo] = {
    Category.SOCIAL: CategoryInfo("Social Media", "Social networking and communication platforms", 3),
    Category.ECOMMERCE: CategoryInfo("E-commerce", "Online shopping and marketplace platforms", 4),
    Category.ENTERTAINMENT: CategoryInfo("Entertainment", "Streaming, gaming, and media platforms", 3),
    Category.FINANCIAL: CategoryInfo("Financial", "Banking, payments, and financial services", 5),
    Category.DEVELOPMENT: CategoryInfo("Development", "Code repositories and developer tools", 4),
    Category.EDUCATION: CategoryInfo("Education", "Learning platforms and educational services", 4),
    Category.PROFESSIONAL: CategoryInfo("Professional", "Career and professional networking", 4),
    Category.PRODUCTIVITY: CategoryInfo("Productivity", "Task management and productivity tools", 3),
    Category.COMMUNICATION: CategoryInfo("Communication", "Messaging and communication tools", 3),
    Category.NEWSLETTER: CategoryInfo("Newsletter", "News, updates, and subscription content", 2),
    Category.MARKETING: CategoryInfo("Marketing", "Promotional and marketing communications", 1),
    Category.OTHER: CategoryInfo("Other", "Uncategorized services", 1),
}


@dataclass
class PlatformRegistry:
    """Ordered domain -> Platform mapping plus lookup helpers."""

    platforms: dict[str, Platform] = field(default_factory=lambda: dict(BUILTIN_PLATFORMS))
    categories: dict[Category, CategoryInfo] = field(default_factory=lambda: dict(CATEGORIES))

    def get(self, domain: str) -> Platform | None:
        return self.platforms.get(domain.lower().strip())

    def items(self):
        return self.platforms.items()

    def __len__(self) -> int:
        return len(self.platforms)

    def platforms_by_category(self, category: Category | str) -> list[tuple[str, Platform]]:
        """Return (domain, platform) pairs in a category, highest confidence first."""
        category = Category(category)
        matches = [(d, p) for d, p in self.platforms.items() if p.category is category]
        return sorted(matches, key=lambda item: -item[1].confidence)

    def categories_with_stats(self) -> list[dict]:
        """Return every category with its platform count, highest priority first."""
        counts: dict[Category, int] = {}
        for platform in self.platforms.values():
            counts[platform.category] = counts.get(platform.category, 0) + 1

        rows = [
            {
                "key": key.value,
                "name": info.name,
                "description": info.description,
                "priority": info.priority,
                "platform_count": counts.get(key, 0),
            }
            for key, info in self.categories.items()
        ]
        return sorted(rows, key=lambda r: -r["priority"])

    def search(self, query: str, limit: int = 10) -> list[tuple[str, Platform, int]]:
        """Search platforms by name, domain and keywords.

        Name hits weigh 100, domain hits 80 and every keyword containing the
        term adds 20.  Returns (domain, platform, score) sorted by score.
        """
        term = query.lower().strip()
        if not term:
            return []

        matches: list[tuple[str, Platform, int]] = []
        for domain, platform in self.platforms.items():
            score = 0
            if term in platform.name.lower():
                score += 100
            if term in domain:
                score += 80
            score += 20 * sum(1 for k in platform.keywords if term in k)
            if score > 0:
                matches.append((domain, platform, score))

        matches.sort(key=lambda m: -m[2])
        return matches[:limit]

    def stats(self) -> dict:
        platforms = list(self.platforms.values())
        support = {"link": 0, "manual": 0, "unknown": 0}
        for p in platforms:
            support[p.unsubscribe_support] = support.get(p.unsubscribe_support, 0) + 1
        average = round(sum(p.confidence for p in platforms) / len(platforms)) if platforms else 0
        return {
            "total_platforms": len(platforms),
            "average_confidence": average,
            "unsubscribe_support": support,
            "categories": self.categories_with_stats(),
        }

    def add_platform(self, domain: str, name: str, **fields) -> bool:
        """Register a new platform. Returns False if the domain is already known."""
        domain = domain.lower().strip()
        if domain in self.platforms:
            logger.warning("Platform already exists: %s", domain)
            return False

        base = Platform(name=name, category=Category.OTHER, keywords=(), confidence=50)
        if "category" in fields:
            fields["category"] = Category(fields["category"])
        for key in ("keywords", "aliases"):
            if key in fields:
                fields[key] = tuple(fields[key])
        self.platforms[domain] = replace(base, **fields)
        logger.info("New platform added: %s (%s)", name, domain)
        return True


DEFAULT_REGISTRY = PlatformRegistry()
