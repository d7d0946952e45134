"""
Resumable crawl state for the Japanese Real Estate harvester.

The listing crawl records the last result page it completed in a single
document of the state collection:

    {"_id": "crawler", "last_completed_page": 4, "updated_at": ...}

A new run resumes at last_completed_page + 1, so pages that were saved are
not fetched again and a page that failed is retried.

Author: Leonardo Pacciani-Mori
License: MIT
"""

from datetime import datetime, timezone

from japanese_real_estate.config.settings import CRAWL_STATE_NAME
from japanese_real_estate.config.logging_config import get_logger

logger = get_logger(__name__)


class CrawlStateStore:
    """
    Reads and writes the last completed page of a named crawl.

    Attributes:
        collection: The state collection.
        crawl_name: _id of the state document.
    """

    def __init__(self, collection, crawl_name: str = CRAWL_STATE_NAME):
        self.collection = collection
        self.crawl_name = crawl_name

    def get_last_completed_page(self) -> int:
        """
        Return the last completed page, 0 if the crawl never completed one.

        Store errors propagate to the caller.
        """
        document = self.collection.find_one({"_id": self.crawl_name})
        if not document:
            return 0
        try:
            return max(0, int(document.get("last_completed_page") or 0))
        except (TypeError, ValueError):
            logger.warning(
                f"Invalid last_completed_page in crawl state {self.crawl_name!r}: "
                f"{document.get('last_completed_page')!r}"
            )
            return 0

    def get_resume_page(self) -> int:
        """Return the first page the next run should fetch."""
        return self.get_last_completed_page() + 1

    def set_last_completed_page(self, page_number: int) -> None:
        """
        Persist page_number as the last completed page (upsert).

        Args:
            page_number: The page whose fetch and write succeeded.
        """
        self.collection.update_one(
            {"_id": self.crawl_name},
            {"$set": {
                "last_completed_page": page_number,
                "updated_at": datetime.now(timezone.utc),
            }},
            upsert=True,
        )

    def reset(self) -> None:
        """Forget the crawl progress so that the next run starts at page 1."""
        self.collection.delete_one({"_id": self.crawl_name})
        logger.info(f"Crawl state {self.crawl_name!r} reset")
