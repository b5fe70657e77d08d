from __future__ import annotations

from typing import Any, Dict
from urllib.parse import urlparse

import httpx

from brandkb.errors import ConnectorError

from .types import Connector, ConnectorContext

SERPAPI_URL = "https://serpapi.com/search.json"
MAX_ORGANIC = 10
MAX_QUESTIONS = 5
MAX_RELATED = 8


def _host(url: str) -> str:
    try:
        return urlparse(url).netloc.lower()
    except ValueError:
        return ""


class SerpApiConnector(Connector):
    name = "serpapi"
    api_key_setting = "serpapi_api_key"

    async def fetch(self, ctx: ConnectorContext, client: httpx.AsyncClient) -> Dict[str, Any]:
        resp = await client.get(SERPAPI_URL, params={
            "engine": "google",
            "q": ctx.brand_name or ctx.domain,
            "api_key": self.api_key,
            "num": 20,
        })
        resp.raise_for_status()
        data = resp.json()
        if isinstance(data, dict) and data.get("error"):
            raise ConnectorError(self.name, str(data["error"]))

        organic = []
        for index, item in enumerate((data.get("organic_results") or [])[:MAX_ORGANIC]):
            if not isinstance(item, dict):
                continue
            link = item.get("link") or ""
            organic.append({
                "position": item.get("position") or index + 1,
                "title": item.get("title") or "",
                "link": link,
                "snippet": item.get("snippet") or "",
                "domain": _host(link),
            })

        questions = []
        for item in (data.get("related_questions") or data.get("people_also_ask") or [])[:MAX_QUESTIONS]:
            if isinstance(item, dict) and item.get("question"):
                questions.append({"question": item["question"], "snippet": item.get("snippet") or ""})

        related = []
        for item in (data.get("related_searches") or [])[:MAX_RELATED]:
            query = item.get("query") if isinstance(item, dict) else None
            if query:
                related.append(query)

        return {"organicResults": organic, "peopleAlsoAsk": questions, "relatedSearches": related}
