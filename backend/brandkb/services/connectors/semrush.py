from __future__ import annotations

from typing import Any, Dict, List

import httpx

from brandkb.errors import ConnectorError

from .types import Connector, ConnectorContext

SEMRUSH_URL = "https://api.semrush.com/"
KEYWORD_COLUMNS = "Ph,Po,Nq,Kd,Ur"
COMPETITOR_COLUMNS = "Dn,Cr,Np"
KEYWORD_LIMIT = 50
COMPETITOR_LIMIT = 10


def _to_int(value: str) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _to_float(value: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_semrush_csv(text: str) -> List[List[str]]:
    """Semicolon-separated report; first line is the header. 'ERROR ...' bodies raise."""
    body = (text or "").strip()
    if body.upper().startswith("ERROR"):
        if "NOTHING FOUND" in body.upper():
            return []
        raise ConnectorError("semrush", body.splitlines()[0])
    lines = [line for line in body.splitlines() if line.strip()]
    return [line.split(";") for line in lines[1:]]


class SemrushConnector(Connector):
    name = "semrush"
    api_key_setting = "semrush_api_key"

    async def _report(self, client: httpx.AsyncClient, params: Dict[str, Any]) -> List[List[str]]:
        resp = await client.get(SEMRUSH_URL, params={"key": self.api_key, "database": "us", **params})
        resp.raise_for_status()
        return parse_semrush_csv(resp.text)

    async def fetch(self, ctx: ConnectorContext, client: httpx.AsyncClient) -> Dict[str, Any]:
        keyword_rows = await self._report(client, {
            "type": "domain_organic",
            "domain": ctx.domain,
            "display_limit": KEYWORD_LIMIT,
            "export_columns": KEYWORD_COLUMNS,
        })
        organic_keywords = []
        for parts in keyword_rows[:KEYWORD_LIMIT]:
            parts = parts + [""] * (5 - len(parts))
            if not parts[0].strip():
                continue
            organic_keywords.append({
                "keyword": parts[0].strip(),
                "position": _to_int(parts[1]),
                "volume": _to_int(parts[2]),
                "difficulty": _to_float(parts[3]),
                "url": parts[4].strip(),
            })

        competitor_rows = await self._report(client, {
            "type": "domain_organic_organic",
            "domain": ctx.domain,
            "display_limit": COMPETITOR_LIMIT,
            "export_columns": COMPETITOR_COLUMNS,
        })
        known = {c.lower().strip() for c in ctx.competitors}
        competitors = []
        for parts in competitor_rows:
            parts = parts + [""] * (3 - len(parts))
            domain = parts[0].strip().lower()
            if not domain:
                continue
            competitors.append({
                "domain": domain,
                # Cr is a 0-1 ratio
                "competitionLevel": round(_to_float(parts[1]) * 100, 2),
                "commonKeywords": _to_int(parts[2]),
                "known": domain in known,
            })

        return {"organicKeywords": organic_keywords, "competitors": competitors}
