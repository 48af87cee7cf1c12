"""URL extraction, normalization and platform detection for chat messages."""

import re
from typing import List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from link_analyzer.core.logging import get_logger
from link_analyzer.core.models import PlatformTag

logger = get_logger(__name__)

URL_PATTERN = re.compile(r'(https?://[^\s<>"{}|\\^`\[\]]+)', re.IGNORECASE)

# Query parameters that identify the content on each platform; everything else is tracking noise
ESSENTIAL_PARAMS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("youtube.com", ("v",)),
    ("youtu.be", ()),
    ("linkedin.com", ()),
    ("twitter.com", ("status",)),
    ("x.com", ("status",)),
    ("instagram.com", ("p",)),
    ("tiktok.com", ("video",)),
    ("facebook.com", ("posts",)),
)

# Checked in order, first match wins
PLATFORM_HOSTS: Tuple[Tuple[str, PlatformTag], ...] = (
    ("linkedin.com", PlatformTag.LINKEDIN),
    ("twitter.com", PlatformTag.TWITTER),
    ("x.com", PlatformTag.TWITTER),
    ("instagram.com", PlatformTag.INSTAGRAM),
    ("tiktok.com", PlatformTag.TIKTOK),
    ("facebook.com", PlatformTag.FACEBOOK),
    ("youtube.com", PlatformTag.YOUTUBE),
    ("youtu.be", PlatformTag.YOUTUBE),
    ("medium.com", PlatformTag.MEDIUM),
    ("substack.com", PlatformTag.SUBSTACK),
    ("github.com", PlatformTag.GITHUB),
)

BLOCKED_PATH_KEYWORDS = (
    "login", "signin", "signup", "register", "auth", "oauth", "oauth2", "authorize", "authenticate", "private",
)

# A whole path segment, optionally with an extension (/login.php), never a prefix (/authors)
BLOCKED_SEGMENT = re.compile(r"^(?:%s)(?:\.\w+)?$" % "|".join(BLOCKED_PATH_KEYWORDS))


def _host_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def _essential_params_for(host: str) -> Tuple[str, ...]:
    for domain, params in ESSENTIAL_PARAMS:
        if _host_matches(host, domain):
            return params
    return ()


def normalize_url(url: str) -> Optional[str]:
    """Strip tracking parameters and non-post fragments.

    Returns None when the URL cannot be parsed or points at nothing
    worth scraping (no dotted host, or an empty/root path).
    """
    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
    except ValueError:
        logger.warning(f"Invalid or malformed URL: {url}")
        return None

    keep = _essential_params_for(host)
    query = urlencode([(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k in keep])

    fragment = parts.fragment if "post" in parts.fragment else ""
    path = parts.path

    if "." not in host or len(path) <= 1:
        return None

    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, query, fragment))


def extract_urls(text: Optional[str]) -> List[str]:
    """Find and clean every URL in a message, in order of appearance.

    Duplicates are kept; deduplication happens against the store.
    """
    if not text:
        return []

    urls = []
    for match in URL_PATTERN.findall(text):
        cleaned = normalize_url(match)
        if cleaned:
            urls.append(cleaned)
    return urls


def detect_platform(url: str) -> PlatformTag:
    """Classify a URL by host, defaulting to generic."""
    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return PlatformTag.GENERIC

    for domain, platform in PLATFORM_HOSTS:
        if _host_matches(host, domain):
            return platform
    return PlatformTag.GENERIC


def is_scrapeable(url: str) -> bool:
    """False for URLs that lead to login walls or private areas."""
    try:
        path = urlsplit(url).path.lower()
    except ValueError:
        return False
    return not any(BLOCKED_SEGMENT.match(segment) for segment in path.split("/"))

