"""Outbound link resolution and affiliate tagging.

Every deal shown to a user must carry a working absolute link. Listings with a
missing, placeholder or broken link get a search-results URL on the retailer
they came from; listings from retailers we can't identify are unavailable.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qsl, quote_plus, urlencode, urljoin, urlparse, urlunparse

from dealfinder.config import settings

logger = logging.getLogger(__name__)

# Retailer keyword (matched against the source name) -> search endpoint.
# The URL-encoded title is appended to the endpoint.
RETAILER_SEARCH_URLS: dict[str, str] = {
    "jumia": "https://www.jumia.com.ng/catalog/?q=",
    "jiji": "https://jiji.ng/search?query=",
    "konga": "https://www.konga.com/search?search=",
    "slot": "https://slot.ng/catalogsearch/result/?q=",
    "amazon": "https://www.amazon.com/s?k=",
    "ebay": "https://www.ebay.com/sch/i.html?_nkw=",
    "walmart": "https://www.walmart.com/search?q=",
    "best buy": "https://www.bestbuy.com/site/searchpage.jsp?st=",
    "bestbuy": "https://www.bestbuy.com/site/searchpage.jsp?st=",
    "target": "https://www.target.com/s?searchTerm=",
    "aliexpress": "https://www.aliexpress.com/wholesale?SearchText=",
    "newegg": "https://www.newegg.com/p/pl?d=",
    "temu": "https://www.temu.com/search_result.html?search_key=",
}

# Retailer keyword -> site root, for resolving relative links
RETAILER_DOMAINS: dict[str, str] = {
    "jumia": "https://www.jumia.com.ng",
    "jiji": "https://jiji.ng",
    "konga": "https://www.konga.com",
    "slot": "https://slot.ng",
    "amazon": "https://www.amazon.com",
    "ebay": "https://www.ebay.com",
    "walmart": "https://www.walmart.com",
    "best buy": "https://www.bestbuy.com",
    "bestbuy": "https://www.bestbuy.com",
    "target": "https://www.target.com",
    "aliexpress": "https://www.aliexpress.com",
    "newegg": "https://www.newegg.com",
    "temu": "https://www.temu.com",
    "vendor": "https://www.sonofanton.live",
}

# "www.example.com/path" without a scheme
_BARE_HOST = re.compile(
    r"^(?P<host>(?:www\.)?[a-z0-9-]+(?:\.[a-z0-9-]+)*\.(?P<tld>[a-z]{2,}))(?:[/?#]|$)",
    re.IGNORECASE,
)

# Page extensions that look like a TLD in "product-123.html" style relative links
PAGE_EXTENSIONS = {
    "html", "htm", "shtml", "xhtml", "php", "asp", "aspx", "jsp", "jspx", "cfm", "cgi", "pl", "do", "action",
}

PLACEHOLDER_LINKS = {
    "",
    "#",
    "about:blank",
    "null",
    "none",
    "undefined",
    "n/a",
    "na",
}


def is_valid_absolute_url(url: Optional[str]) -> bool:
    """True for http(s) URLs with a host and no whitespace."""
    if not url or any(ch.isspace() for ch in url):
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False
    host = parsed.hostname or ""
    return "." in host or host == "localhost"


def _is_placeholder(link: str) -> bool:
    lowered = link.strip().lower()
    return lowered in PLACEHOLDER_LINKS or lowered.startswith("javascript:")


def _is_bare_host(link: str) -> bool:
    """True for "www.host/..." or "host.tld/..." links that only lack a scheme."""
    match = _BARE_HOST.match(link)
    if not match:
        return False
    if match.group("host").lower().startswith("www."):
        return True
    return match.group("tld").lower() not in PAGE_EXTENSIONS


def _match_retailer(source: str, table: dict[str, str]) -> Optional[str]:
    """Return the first table entry whose keyword occurs in the source name."""
    source_lower = (source or "").lower()
    for keyword, value in table.items():
        if keyword in source_lower:
            return value
    return None


@dataclass(frozen=True)
class AffiliateProgram:
    """Affiliate parameter for one retailer."""

    retailer: str  # matched against the link host
    param: str
    value: str
    enabled: bool = True


class LinkResolver:
    """Resolve listing links and apply affiliate parameters."""

    def __init__(
        self,
        search_urls: Optional[dict[str, str]] = None,
        domains: Optional[dict[str, str]] = None,
        affiliate_programs: Optional[dict[str, dict]] = None,
    ):
        self.search_urls = search_urls if search_urls is not None else RETAILER_SEARCH_URLS
        self.domains = domains if domains is not None else RETAILER_DOMAINS
        programs = affiliate_programs if affiliate_programs is not None else settings.affiliate_programs
        self.affiliate_programs = [
            AffiliateProgram(
                retailer=name.lower(),
                param=config.get("param", ""),
                value=str(config.get("value", "")),
                enabled=bool(config.get("enabled", False)),
            )
            for name, config in programs.items()
        ]

    def search_url_for(self, title: str, source: str) -> Optional[str]:
        """Retailer search-results URL for the title, or None for unknown retailers."""
        endpoint = _match_retailer(source, self.search_urls)
        if endpoint is None or not title.strip():
            return None
        return endpoint + quote_plus(title.strip())

    def resolve(self, original_link: Optional[str], title: str, source: str) -> Optional[str]:
        """
        Resolve a listing link to an absolute URL.

        Args:
            original_link: Link as reported by the provider (may be empty/relative)
            title: Listing title, used for manufactured search URLs
            source: Retailer / source name

        Returns:
            Absolute http(s) URL, or None when the listing has no usable link
        """
        link = (original_link or "").strip()

        if not _is_placeholder(link):
            if link.startswith("//"):
                link = "https:" + link
            elif _is_bare_host(link):
                link = "https://" + link

            if is_valid_absolute_url(link):
                return link

            try:
                parsed = urlparse(link)
            except ValueError:
                parsed = None

            # Relative path: resolve against the retailer's site
            if parsed is not None and not parsed.scheme and not parsed.netloc and parsed.path:
                domain = _match_retailer(source, self.domains)
                if domain:
                    candidate = urljoin(domain + "/", link)
                    if is_valid_absolute_url(candidate):
                        return candidate

        manufactured = self.search_url_for(title, source)
        if manufactured is None:
            logger.debug(f"No usable link for '{title[:60]}' from '{source}'")
        return manufactured

    def _program_for(self, url: str) -> Optional[AffiliateProgram]:
        host = (urlparse(url).hostname or "").lower()
        for program in self.affiliate_programs:
            if program.retailer in host:
                return program
        return None

    def apply_affiliate(self, url: str) -> str:
        """
        Append the retailer's affiliate parameter to a URL.

        Idempotent; a no-op for unrecognized hosts and disabled programs.
        """
        if not is_valid_absolute_url(url):
            return url
        program = self._program_for(url)
        if program is None or not program.enabled or not program.param or not program.value:
            return url

        parsed = urlparse(url)
        query = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k != program.param]
        query.append((program.param, program.value))
        return urlunparse(parsed._replace(query=urlencode(query)))
