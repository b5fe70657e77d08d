import asyncio
from datetime import date

import httpx
import pytest

from brandkb.config import Settings
from brandkb.errors import ConnectorConfigError, ConnectorError
from brandkb.services.connectors import ConnectorContext, SemrushConnector, SerpApiConnector, SimilarwebConnector
from brandkb.services.connectors.semrush import parse_semrush_csv
from brandkb.services.connectors.similarweb import last_full_months

CTX = ConnectorContext(domain="acme.test", brand_name="Acme", competitors=["rival.test"])

KEYWORDS_CSV = (
    "Keyword;Position;Search Volume;Keyword Difficulty Index;Url\n"
    "rocket skates;1;2400;40.5;https://acme.test/skates\n"
    "anvil;7;300;12;https://acme.test/anvil\n"
)
COMPETITORS_CSV = (
    "Domain;Competitor Relevance;Common Keywords\n"
    "rival.test;0.85;120\n"
    "other.test;0.3;15\n"
)


def _fetch(connector, handler):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await connector.fetch(CTX, client)
    return asyncio.run(run())


def test_semrush_parses_keywords_and_competitors():
    seen = []

    def handler(request):
        params = request.url.params
        seen.append(params["type"])
        assert params["key"] == "sr-key"
        assert params["domain"] == "acme.test"
        if params["type"] == "domain_organic":
            assert params["export_columns"] == "Ph,Po,Nq,Kd,Ur"
            return httpx.Response(200, text=KEYWORDS_CSV)
        return httpx.Response(200, text=COMPETITORS_CSV)

    data = _fetch(SemrushConnector(Settings(semrush_api_key="sr-key")), handler)

    assert seen == ["domain_organic", "domain_organic_organic"]
    assert data["organicKeywords"][0] == {
        "keyword": "rocket skates",
        "position": 1,
        "volume": 2400,
        "difficulty": 40.5,
        "url": "https://acme.test/skates",
    }
    assert data["competitors"] == [
        {"domain": "rival.test", "competitionLevel": 85.0, "commonKeywords": 120, "known": True},
        {"domain": "other.test", "competitionLevel": 30.0, "commonKeywords": 15, "known": False},
    ]


def test_semrush_error_body_raises():
    with pytest.raises(ConnectorError):
        parse_semrush_csv("ERROR 120 :: WRONG KEY - ID PAIR")
    assert parse_semrush_csv("ERROR 50 :: NOTHING FOUND") == []


def test_missing_api_key_is_a_config_error():
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(ConnectorConfigError):
        _fetch(SemrushConnector(Settings(semrush_api_key="")), handler)


def test_http_errors_propagate_to_the_aggregator():
    def handler(request):
        return httpx.Response(503, text="unavailable")

    with pytest.raises(httpx.HTTPStatusError):
        _fetch(SerpApiConnector(Settings(serpapi_api_key="k")), handler)


def test_serpapi_extracts_results_questions_and_related_searches():
    payload = {
        "organic_results": [
            {"position": i + 1, "title": f"Result {i}", "link": f"https://site{i}.test/page", "snippet": "s"}
            for i in range(12)
        ],
        "related_questions": [{"question": f"Question {i}?", "snippet": "a"} for i in range(7)],
        "related_searches": [{"query": f"acme {i}"} for i in range(10)],
    }

    def handler(request):
        assert request.url.params["q"] == "Acme"
        assert request.url.params["engine"] == "google"
        return httpx.Response(200, json=payload)

    data = _fetch(SerpApiConnector(Settings(serpapi_api_key="k")), handler)

    assert len(data["organicResults"]) == 10
    assert data["organicResults"][0]["domain"] == "site0.test"
    assert len(data["peopleAlsoAsk"]) == 5
    assert data["peopleAlsoAsk"][0] == {"question": "Question 0?", "snippet": "a"}
    assert data["relatedSearches"] == [f"acme {i}" for i in range(8)]


def test_serpapi_error_field_raises():
    def handler(request):
        return httpx.Response(200, json={"error": "Invalid API key."})

    with pytest.raises(ConnectorError):
        _fetch(SerpApiConnector(Settings(serpapi_api_key="k")), handler)


def test_last_full_months_spans_a_year():
    assert last_full_months(date(2024, 3, 15)) == ("2023-03", "2024-02")
    assert last_full_months(date(2024, 1, 1)) == ("2023-01", "2023-12")


def test_similarweb_reports_monthly_visits_only():
    def handler(request):
        assert request.url.path == "/v1/website/acme.test/total-traffic-and-engagement/visits"
        assert request.url.params["granularity"] == "monthly"
        return httpx.Response(200, json={"visits": [
            {"date": "2024-01-01", "visits": 1000},
            {"date": "2024-02-01", "visits": 3000},
        ]})

    data = _fetch(SimilarwebConnector(Settings(similarweb_api_key="k")), handler)

    assert data["monthlyVisits"] == [
        {"date": "2024-01-01", "visits": 1000},
        {"date": "2024-02-01", "visits": 3000},
    ]
    assert data["totalVisits"] == 4000
    assert data["averageMonthlyVisits"] == 2000
    assert "bounceRate" not in data


def test_similarweb_without_series_raises():
    def handler(request):
        return httpx.Response(200, json={"meta": {"status": "Error"}})

    with pytest.raises(ConnectorError):
        _fetch(SimilarwebConnector(Settings(similarweb_api_key="k")), handler)
