from datetime import datetime, timezone

from sqlalchemy import func, select

from brandkb.models import PageContent
from brandkb.services.crawler.batch import content_hash
from brandkb.services.crawler.models import CrawlResult
from brandkb.services.normalize import PageNormalizer, extract_html
from brandkb.services.storage import ContentStore

ARTICLE = """<html><head><title>Rocket Skates | Acme</title></head>
<body>
  <nav><a href="/">Home</a></nav>
  <h1>Rocket Skates</h1>
  <h2>Features</h2>
  <p>Our rocket skates reach speeds that leave every roadrunner behind.</p>
  <h3>Safety</h3>
  <p>Always wear a helmet when testing rocket skates in the desert.</p>
  <script>var tracking = true;</script>
</body></html>"""


def _stored(db, brand, blob_store, body, content_type="text/html"):
    body = body.encode() if isinstance(body, str) else body
    result = CrawlResult(
        url="https://acme.test/skates",
        status_code=200,
        content_type=content_type,
        body=body,
        content_hash=content_hash(body),
        fetch_time=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )
    return ContentStore(db, blob_store).store(brand.id, result)


def test_extract_html_returns_title_headings_and_text():
    title, text, headings = extract_html(ARTICLE)
    assert title == "Rocket Skates | Acme"
    assert [h["level"] for h in headings] == ["h1", "h2", "h3"]
    assert headings[1] == {"level": "h2", "text": "Features"}
    assert "helmet" in text
    assert "tracking" not in text


def test_normalize_upserts_one_row_per_raw_page(db, brand, blob_store):
    raw_page_id = _stored(db, brand, blob_store, ARTICLE)
    normalizer = PageNormalizer(db, blob_store)

    first = normalizer.normalize(brand.id, [raw_page_id])
    second = normalizer.normalize(brand.id, [raw_page_id])

    assert first.page_content_ids == second.page_content_ids
    assert db.scalar(select(func.count(PageContent.id))) == 1
    content = db.scalar(select(PageContent))
    assert content.raw_page_id == raw_page_id
    assert content.word_count == len(content.text.split())


def test_binary_and_unknown_pages_are_skipped(db, brand, blob_store):
    image_id = _stored(db, brand, blob_store, b"\x89PNG\r\n", content_type="image/png")

    summary = PageNormalizer(db, blob_store).normalize(brand.id, [image_id, "missing"])

    assert summary.to_dict() == {"normalizedPages": 0, "pageContentIds": [], "skipped": 2, "failed": 0}


def test_plain_text_is_kept_verbatim(db, brand, blob_store):
    raw_page_id = _stored(db, brand, blob_store, "hello plain world\n", content_type="text/plain")

    summary = PageNormalizer(db, blob_store).normalize(brand.id, [raw_page_id])

    content = db.get(PageContent, summary.page_content_ids[0])
    assert content.text == "hello plain world"
    assert content.word_count == 3
