"""Onboarding crawler: robots policy, URL discovery and batched fetching."""

from .models import CrawlResult, RobotsPolicy
from .robots import RobotsPolicyResolver, agent_token, parse_robots
from .discovery import UrlDiscoverer, extract_links, extract_sitemap_locs, normalize_url, same_domain
from .batch import BatchCrawler, content_hash, extract_metadata

__all__ = [
    # Components
    "RobotsPolicyResolver",
    "UrlDiscoverer",
    "BatchCrawler",

    # Data models
    "RobotsPolicy",
    "CrawlResult",

    # Utility functions
    "agent_token",
    "parse_robots",
    "extract_links",
    "extract_sitemap_locs",
    "normalize_url",
    "same_domain",
    "content_hash",
    "extract_metadata",
]
