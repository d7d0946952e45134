"""
Configuration settings for the Japanese Real Estate harvester.

This module centralizes all configuration constants, database parameters,
and default values used throughout the harvester. Settings are grouped by
their functional area for easy maintenance.

Configuration includes:
    - Database connection parameters (MongoDB)
    - Collection names for listings, details and crawl state
    - Target site paths and run mode
    - HTTP client settings (timeouts, retries, user agents)
    - Rate limiting and batch processing settings

Note:
    Every value can be overridden through an environment variable of the
    same name. Fallback values are provided for local development.

Author: Leonardo Pacciani-Mori
License: MIT
"""

import os


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# =============================================================================
# DATABASE CONFIGURATION
# =============================================================================

# -----------------------------------------------------------------------------
# MongoDB Configuration
# -----------------------------------------------------------------------------
# Connection parameters for the MongoDB server holding the harvested data.
# Use MONGODB_HOST=mongodb for Docker, or 127.0.0.1 for local development.
MONGODB_HOST = os.getenv("MONGODB_HOST", "127.0.0.1")
MONGODB_PORT = int(os.getenv("MONGODB_PORT", "27017"))
MONGODB_USER = os.getenv("MONGODB_USER", "")
MONGODB_PASSWORD = os.getenv("MONGODB_PASSWORD", "")
MONGODB_AUTH_SOURCE = os.getenv("MONGODB_AUTH_SOURCE", "admin")

# Server selection timeout. A stopped server fails fast instead of hanging
# the run for the driver default of 30 seconds.
MONGODB_TIMEOUT_MS = int(os.getenv("MONGODB_TIMEOUT_MS", "10000"))

# Database holding all harvester collections
MONGODB_DATABASE_NAME = os.getenv("MONGODB_DATABASE_NAME", "suumo")

# Collection names
MONGODB_LISTINGS_COLLECTION = os.getenv("MONGODB_LISTINGS_COLLECTION", "listings")
MONGODB_DETAILS_COLLECTION = os.getenv("MONGODB_DETAILS_COLLECTION", "details")
MONGODB_STATE_COLLECTION = os.getenv("MONGODB_STATE_COLLECTION", "scraper_state")

# Key of the crawl state document in the state collection.
CRAWL_STATE_NAME = "crawler"

# =============================================================================
# TARGET SITE CONFIGURATION
# =============================================================================

# Search result path of the listing pager. The page number is appended as
# "&pn=<page>", so the path must already contain a query string.
SCRAPING_START_PATH = os.getenv(
    "SCRAPING_START_PATH",
    "https://suumo.jp/jj/bukken/ichiran/JJ010FJ001/?ar=030&bs=011&ta=13&pc=30",
)

# Base used to turn the relative detail links found on listing cards into
# absolute URLs.
SCRAPING_BASE_PATH = os.getenv("SCRAPING_BASE_PATH", "https://suumo.jp")

# Run mode: "listings" walks the pager, "details" enriches stored listings.
MODE_LISTINGS = "listings"
MODE_DETAILS = "details"
VALID_MODES = [MODE_LISTINGS, MODE_DETAILS]
SCRAPING_MODE = os.getenv("SCRAPING_MODE", MODE_LISTINGS).strip().lower()

# =============================================================================
# HTTP CLIENT CONFIGURATION
# =============================================================================

# Timeout in seconds for HTTP requests.
HTTP_TIMEOUT_SECONDS = int(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))

# Bounded automatic retry for transient server errors and timeouts.
HTTP_MAX_RETRIES = int(os.getenv("HTTP_MAX_RETRIES", "2"))
HTTP_BACKOFF_FACTOR = float(os.getenv("HTTP_BACKOFF_FACTOR", "1.0"))
HTTP_RETRY_STATUSES = (408, 413, 429, 500, 502, 503, 504, 521, 522, 524)

# Candidate user agents. One is picked at random for every request.
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/109.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/109.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/108.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/108.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/108.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.1 Safari/605.1.15",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.2 Safari/605.1.15",
]

SCRAPING_ACCEPT_LANGUAGE = os.getenv(
    "SCRAPING_ACCEPT_LANGUAGE",
    "ja-JP,ja;q=0.9,en-US;q=0.8,en;q=0.7",
)

# Headers sent with every request. The User-Agent is added per request.
SCRAPING_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": SCRAPING_ACCEPT_LANGUAGE,
}

# =============================================================================
# RATE LIMITING CONFIGURATION
# =============================================================================

# Jittered delay window (seconds) between consecutive page or detail fetches.
SCRAPING_MIN_WAIT = float(os.getenv("SCRAPING_MIN_WAIT", "2.0"))
SCRAPING_MAX_WAIT = float(os.getenv("SCRAPING_MAX_WAIT", "3.0"))

# =============================================================================
# DETAIL ENRICHMENT CONFIGURATION
# =============================================================================

# Number of listings selected per store query. Small batches keep result
# cursors short-lived.
DETAIL_BATCH_SIZE = int(os.getenv("DETAIL_BATCH_SIZE", "20"))

# Fixed pause between batches, in seconds.
DETAIL_BATCH_PAUSE = float(os.getenv("DETAIL_BATCH_PAUSE", "2"))

# Pause after a failed remaining-count query, in seconds.
DETAIL_COUNT_FAILURE_DELAY = float(os.getenv("DETAIL_COUNT_FAILURE_DELAY", "5"))

# Pause after a failed batch selection query, in seconds.
DETAIL_BATCH_RETRY_DELAY = float(os.getenv("DETAIL_BATCH_RETRY_DELAY", "10"))

# Safety valve: stop after this many consecutive failed batch selections.
DETAIL_MAX_SELECTION_FAILURES = int(os.getenv("DETAIL_MAX_SELECTION_FAILURES", "5"))

# =============================================================================
# LOGGING
# =============================================================================

LOG_VERBOSE = _env_flag("LOG_VERBOSE", "false")
