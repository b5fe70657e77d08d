from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional, Tuple

import httpx

from brandkb.errors import ConnectorError

from .types import Connector, ConnectorContext

SIMILARWEB_VISITS_URL = "https://api.similarweb.com/v1/website/{domain}/total-traffic-and-engagement/visits"


def last_full_months(today: Optional[date] = None, months: int = 12) -> Tuple[str, str]:
    """(start, end) as YYYY-MM covering the last ``months`` complete months."""
    today = today or date.today()
    end_year, end_month = today.year, today.month - 1
    if end_month == 0:
        end_year, end_month = end_year - 1, 12
    start_index = end_year * 12 + (end_month - 1) - (months - 1)
    start_year, start_month = divmod(start_index, 12)
    return f"{start_year:04d}-{start_month + 1:02d}", f"{end_year:04d}-{end_month:02d}"


class SimilarwebConnector(Connector):
    name = "similarweb"
    api_key_setting = "similarweb_api_key"

    async def fetch(self, ctx: ConnectorContext, client: httpx.AsyncClient) -> Dict[str, Any]:
        start, end = last_full_months()
        resp = await client.get(
            SIMILARWEB_VISITS_URL.format(domain=ctx.domain),
            params={
                "api_key": self.api_key,
                "start_date": start,
                "end_date": end,
                "granularity": "monthly",
                "main_domain_only": "false",
            },
        )
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict) or "visits" not in data:
            raise ConnectorError(self.name, "response has no visits series")

        monthly = []
        for item in data.get("visits") or []:
            if not isinstance(item, dict):
                continue
            monthly.append({"date": item.get("date"), "visits": item.get("visits") or 0})

        total = sum(float(item["visits"]) for item in monthly)
        return {
            "domain": ctx.domain,
            "startDate": start,
            "endDate": end,
            "monthlyVisits": monthly,
            "totalVisits": total,
            "averageMonthlyVisits": total / len(monthly) if monthly else 0,
        }
