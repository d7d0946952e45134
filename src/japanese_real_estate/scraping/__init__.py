"""
Web scraping module for the Japanese Real Estate harvester.

This module provides the two crawl modes: the resumable listing crawl over
the result pager, and the batched enrichment of stored listings with their
detail pages.

Submodules:
    http_client: Sequential HTTP client with retries and user-agent rotation.
    throttle: Jittered delay between requests.
    field_extractor: Rule-driven extraction of raw strings from markup.
    listing_parser: Site selectors, rule tables and pager parsing.
    record_builder: Typed listing and detail records.
    listing_crawler: Fetches one result page into listing records.
    detail_scraper: Fetches one detail page into a detail record.
    crawl_state: Persistent last-completed-page for resumption.
    listing_controller: Resumable listing crawl.
    detail_controller: Batched detail enrichment.
    harvest: Entry points wiring the collaborators together.
"""

from .http_client import HttpFetcher, UserAgentPool, build_session, get_single_url
from .throttle import Throttle
from .listing_crawler import ListingPageCrawler, PageCountError, listing_page_url
from .detail_scraper import DetailPageScraper
from .crawl_state import CrawlStateStore
from .listing_controller import ResumableListingCrawlController, ListingCrawlSummary
from .detail_controller import BatchedDetailEnrichmentController, DetailEnrichmentSummary
from .harvest import (
    run_harvest,
    run_listing_crawl,
    run_detail_enrichment,
    log_harvest_statistics,
)
