"""robots.txt fetch + simplified interpretation into a RobotsPolicy."""

import logging
from typing import Callable, List, Optional

import httpx

from .constants import DEFAULT_ROBOTS_DELAY, ROBOTS_TIMEOUT
from .models import RobotsPolicy

logger = logging.getLogger(__name__)


def agent_token(user_agent: str) -> str:
    """Product token of a User-Agent string: 'Bot/1.0 (+url)' -> 'bot'."""
    token = (user_agent or "").strip().split(" ", 1)[0]
    return token.split("/", 1)[0].lower()


def parse_robots(text: str, user_agent: str) -> RobotsPolicy:
    """
    Interpret robots.txt for one crawler.

    Only User-agent, Disallow and Crawl-delay are understood. A section is
    opened by every User-agent line and is relevant when that agent is
    ``*`` or a case-insensitive substring of our agent token. There is no
    precedence between sections and no wildcard matching.
    """
    token = agent_token(user_agent)
    policy = RobotsPolicy(allowed=True, crawl_delay=0.0, restrictions=[])

    relevant = False
    for raw_line in (text or "").splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue
        directive, value = line.split(":", 1)
        directive = directive.strip().lower()
        value = value.strip()

        if directive == "user-agent":
            agent = value.lower()
            relevant = agent == "*" or (bool(agent) and agent in token)
            continue

        if not relevant:
            continue

        if directive == "disallow":
            if value == "/":
                policy.allowed = False
            elif value and value not in policy.restrictions:
                policy.restrictions.append(value)
        elif directive == "crawl-delay":
            try:
                delay = float(value)
            except ValueError:
                continue
            if delay >= 0:
                policy.crawl_delay = delay

    return policy


class RobotsPolicyResolver:
    """Fetches https://{domain}/robots.txt and turns it into a RobotsPolicy."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: float = ROBOTS_TIMEOUT,
        progress_callback: Optional[Callable[[str], None]] = None,
    ):
        self.client = client
        self.timeout = timeout
        self.progress_callback = progress_callback

    def _log(self, message: str) -> None:
        if self.progress_callback:
            self.progress_callback(message)

    async def resolve(self, domain: str, user_agent: str) -> RobotsPolicy:
        robots_url = f"https://{domain}/robots.txt"
        try:
            response = await self.client.get(
                robots_url,
                headers={"User-Agent": user_agent},
                timeout=self.timeout,
            )
        except Exception as exc:
            logger.warning("robots.txt fetch failed for %s: %s", domain, exc)
            self._log(f"robots.txt unavailable for {domain}, using defaults")
            return self._fallback()

        if not 200 <= response.status_code < 300:
            self._log(f"robots.txt returned {response.status_code} for {domain}, using defaults")
            return self._fallback()

        policy = parse_robots(response.text, user_agent)
        self._log(
            f"robots.txt for {domain}: allowed={policy.allowed} "
            f"delay={policy.crawl_delay}s restrictions={len(policy.restrictions)}"
        )
        return policy

    @staticmethod
    def _fallback() -> RobotsPolicy:
        restrictions: List[str] = []
        return RobotsPolicy(allowed=True, crawl_delay=DEFAULT_ROBOTS_DELAY, restrictions=restrictions)
