import asyncio

import httpx

from brandkb.services.crawler.robots import RobotsPolicyResolver, agent_token, parse_robots

UA = "BrandKB-Bot/1.0 (+https://brandkb.io/bot)"


def _resolve(handler, domain="acme.test"):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await RobotsPolicyResolver(client).resolve(domain, UA)
    return asyncio.run(run())


def test_agent_token_is_lowercased_product_name():
    assert agent_token(UA) == "brandkb-bot"
    assert agent_token("") == ""


def test_wildcard_disallow_root_blocks_site():
    policy = parse_robots("User-agent: *\nDisallow: /\n", UA)
    assert policy.allowed is False
    assert policy.restrictions == []


def test_crawl_delay_is_read_and_last_relevant_value_wins():
    assert parse_robots("User-agent: *\nCrawl-delay: 3\n", UA).crawl_delay == 3.0

    text = "User-agent: *\nCrawl-delay: 3\n\nUser-agent: brandkb\nCrawl-delay: 7\n"
    assert parse_robots(text, UA).crawl_delay == 7.0


def test_sections_for_other_agents_are_ignored():
    text = (
        "User-agent: Googlebot\n"
        "Disallow: /\n"
        "Crawl-delay: 30\n"
        "\n"
        "User-agent: *\n"
        "Disallow: /private\n"
        "Disallow: /tmp/\n"
    )
    policy = parse_robots(text, UA)
    assert policy.allowed is True
    assert policy.crawl_delay == 0.0
    assert policy.restrictions == ["/private", "/tmp/"]


def test_each_user_agent_line_opens_a_new_section():
    text = "User-agent: Googlebot\nUser-agent: *\nDisallow: /admin\n"
    assert parse_robots(text, UA).restrictions == ["/admin"]

    text = "User-agent: *\nUser-agent: Googlebot\nDisallow: /\n"
    assert parse_robots(text, UA).allowed is True


def test_comments_blank_values_and_case_are_tolerated():
    text = (
        "# robots for acme\n"
        "USER-AGENT: * # everyone\n"
        "DISALLOW: /cart # no carts\n"
        "Disallow:\n"
        "crawl-delay: soon\n"
        "Allow: /cart/public\n"
    )
    policy = parse_robots(text, UA)
    assert policy.allowed is True
    assert policy.restrictions == ["/cart"]
    assert policy.crawl_delay == 0.0


def test_permits_is_a_prefix_check():
    policy = parse_robots("User-agent: *\nDisallow: /private\n", UA)
    assert policy.permits("/about")
    assert not policy.permits("/private/team")


def test_resolver_falls_back_on_404():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(404, text="not found")

    policy = _resolve(handler)
    assert seen == ["https://acme.test/robots.txt"]
    assert policy.to_dict() == {"allowed": True, "crawlDelay": 1.0, "restrictions": []}


def test_resolver_falls_back_on_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    policy = _resolve(handler)
    assert policy.to_dict() == {"allowed": True, "crawlDelay": 1.0, "restrictions": []}


def test_resolver_parses_successful_response_and_sends_user_agent():
    agents = []

    def handler(request):
        agents.append(request.headers.get("user-agent"))
        return httpx.Response(200, text="User-agent: *\nCrawl-delay: 2\nDisallow: /x\n")

    policy = _resolve(handler)
    assert agents == [UA]
    assert policy.allowed is True
    assert policy.crawl_delay == 2.0
    assert policy.restrictions == ["/x"]
