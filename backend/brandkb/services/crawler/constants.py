"""Constants for the onboarding crawler."""

# Fixed fan-out per crawl batch
BATCH_SIZE = 5

# Timeouts (seconds)
ROBOTS_TIMEOUT = 10.0
DISCOVERY_TIMEOUT = 15.0
FETCH_TIMEOUT = 30.0

# Applied when robots.txt cannot be read
DEFAULT_ROBOTS_DELAY = 1.0

DEFAULT_MAX_PAGES = 50

# Schemes and prefixes that never lead to a crawlable page
SKIP_HREF_PREFIXES = ("javascript:", "mailto:", "tel:", "data:", "ftp:")

SITEMAP_SUFFIXES = (".xml", ".xml.gz")

ACCEPT_HEADER = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
ACCEPT_LANGUAGE_HEADER = "en-US,en;q=0.9"
ACCEPT_ENCODING_HEADER = "gzip, deflate"

# Content-type fragment -> storage extension
CONTENT_TYPE_EXTENSIONS = (
    ("html", "html"),
    ("xml", "xml"),
    ("json", "json"),
    ("text/plain", "txt"),
)
DEFAULT_EXTENSION = "bin"
