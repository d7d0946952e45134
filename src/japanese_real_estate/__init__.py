"""
Japanese Real Estate Harvesting Package.

This package incrementally harvests real estate listings from a paginated
Japanese property portal. A listing crawl walks the result-list pager and
stores one summary document per property card; a detail enrichment pass then
visits each stored listing's own page and stores the full detail record.

Modules:
    config: Configuration settings and logging setup.
    core: Shared utilities for database connections, string and numeric parsing.
    scraping: Field extraction, record building, crawlers and crawl controllers.

Author: Leonardo Pacciani-Mori
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Leonardo Pacciani-Mori"
