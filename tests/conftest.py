"""
Shared fixtures for the harvester tests.

Provides an in-memory stand-in for a pymongo collection that raises the real
pymongo error types, a fake page fetcher, a recording sleeper and small HTML
builders for result and detail pages.
"""

import copy
import random
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId
from pymongo.errors import BulkWriteError, DuplicateKeyError
from pymongo.results import InsertManyResult, InsertOneResult, UpdateResult, DeleteResult

from japanese_real_estate.core.connections import HarvestCollections
from japanese_real_estate.scraping.throttle import Throttle


# =============================================================================
# IN-MEMORY COLLECTION
# =============================================================================

def _matches_condition(document: Dict[str, Any], key: str, condition: Any) -> bool:
    present = key in document
    value = document.get(key)
    if isinstance(condition, dict) and any(op.startswith("$") for op in condition):
        for op, operand in condition.items():
            if op == "$ne" and value == operand:
                return False
            if op == "$nin" and value in operand:
                return False
            if op == "$in" and value not in operand:
                return False
            if op == "$exists" and present != bool(operand):
                return False
        return True
    return present and value == condition


def matches(document: Dict[str, Any], query: Optional[Dict[str, Any]]) -> bool:
    return all(
        _matches_condition(document, key, condition)
        for key, condition in (query or {}).items()
    )


class FakeCursor:
    def __init__(self, documents: List[Dict[str, Any]]):
        self._documents = documents
        self._limit = 0

    def limit(self, count: int) -> "FakeCursor":
        self._limit = count
        return self

    def __iter__(self):
        documents = self._documents[:self._limit] if self._limit else self._documents
        return iter([copy.deepcopy(document) for document in documents])


class FakeCollection:
    """
    Minimal pymongo Collection double.

    Documents are kept in insertion order. fail(operation, error, times, after)
    lets `after` calls of an operation succeed, then makes the next `times`
    calls raise `error`.
    """

    def __init__(self, name: str = "collection"):
        self.name = name
        self.documents: List[Dict[str, Any]] = []
        self.indexes: List[Any] = []
        self.calls: List[str] = []
        self._failures: Dict[str, List[Optional[Exception]]] = {}

    def fail(self, operation: str, error: Exception, times: int = 1, after: int = 0) -> None:
        self._failures.setdefault(operation, []).extend([None] * after + [error] * times)

    def _before(self, operation: str) -> None:
        self.calls.append(operation)
        pending = self._failures.get(operation)
        if pending:
            error = pending.pop(0)
            if error is not None:
                raise error

    def _find_index(self, document_id: Any) -> Optional[int]:
        for index, document in enumerate(self.documents):
            if document.get("_id") == document_id:
                return index
        return None

    def insert_one(self, document: Dict[str, Any]) -> InsertOneResult:
        self._before("insert_one")
        document = copy.deepcopy(document)
        document.setdefault("_id", ObjectId())
        if self._find_index(document["_id"]) is not None:
            raise DuplicateKeyError(f"E11000 duplicate key error: {document['_id']}", 11000)
        self.documents.append(document)
        return InsertOneResult(document["_id"], True)

    def insert_many(self, documents: List[Dict[str, Any]], ordered: bool = True) -> InsertManyResult:
        self._before("insert_many")
        inserted_ids = []
        write_errors = []
        for index, document in enumerate(documents):
            document = copy.deepcopy(document)
            document.setdefault("_id", ObjectId())
            if self._find_index(document["_id"]) is not None:
                write_errors.append({
                    "index": index,
                    "code": 11000,
                    "errmsg": f"E11000 duplicate key error: {document['_id']}",
                })
                if ordered:
                    break
                continue
            self.documents.append(document)
            inserted_ids.append(document["_id"])

        if write_errors:
            raise BulkWriteError({
                "writeErrors": write_errors,
                "writeConcernErrors": [],
                "nInserted": len(inserted_ids),
                "nUpserted": 0,
                "nMatched": 0,
                "nModified": 0,
                "nRemoved": 0,
                "upserted": [],
            })
        return InsertManyResult(inserted_ids, True)

    def update_one(self, query: Dict[str, Any], update: Dict[str, Any],
                   upsert: bool = False) -> UpdateResult:
        self._before("update_one")
        for document in self.documents:
            if matches(document, query):
                document.update(copy.deepcopy(update.get("$set", {})))
                return UpdateResult({"n": 1, "nModified": 1}, True)
        if upsert:
            document = {key: value for key, value in query.items() if not isinstance(value, dict)}
            document.update(copy.deepcopy(update.get("$set", {})))
            self.documents.append(document)
            return UpdateResult({"n": 1, "nModified": 0, "upserted": document.get("_id")}, True)
        return UpdateResult({"n": 0, "nModified": 0}, True)

    def find(self, query: Optional[Dict[str, Any]] = None) -> FakeCursor:
        self._before("find")
        return FakeCursor([document for document in self.documents if matches(document, query)])

    def find_one(self, query: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        self._before("find_one")
        for document in self.documents:
            if matches(document, query):
                return copy.deepcopy(document)
        return None

    def count_documents(self, query: Dict[str, Any]) -> int:
        self._before("count_documents")
        return sum(1 for document in self.documents if matches(document, query))

    def delete_one(self, query: Dict[str, Any]) -> DeleteResult:
        self._before("delete_one")
        for index, document in enumerate(self.documents):
            if matches(document, query):
                del self.documents[index]
                return DeleteResult({"n": 1}, True)
        return DeleteResult({"n": 0}, True)

    def create_index(self, keys, name: Optional[str] = None, **kwargs) -> str:
        self._before("create_index")
        self.indexes.append((keys, name))
        return name or "index"


# =============================================================================
# FETCHER AND SLEEPER DOUBLES
# =============================================================================

class FakeFetcher:
    """
    Serves pages from a dict of url -> html, or url -> (content, status).

    Unknown URLs answer 404. Every requested URL is recorded.
    """

    def __init__(self, pages: Optional[Dict[str, Any]] = None):
        self.pages = dict(pages or {})
        self.requested: List[str] = []

    def fetch(self, url: str):
        self.requested.append(url)
        page = self.pages.get(url)
        if page is None:
            return None, {'status': 404, 'message': 'HTTP error 404'}
        if isinstance(page, Exception):
            raise page
        if isinstance(page, tuple):
            return page
        return page, {'status': 200, 'message': 'Success'}


class RecordingSleeper:
    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


# =============================================================================
# HTML BUILDERS
# =============================================================================

def make_card(href: Optional[str] = "/ms/chuko/tokyo/sc_shinjuku/nc_1/",
              name: str = "パークハウス西新宿",
              price: str = "7100万円",
              size: str = "75.5m2（22.83坪）",
              address: str = "東京都新宿区西新宿１",
              station: str = "JR山手線「新宿」",
              walk: str = "徒歩5分",
              age: str = "2005年3月") -> str:
    link = f'<a href="{href}">{name}</a>' if href is not None else f"<span>{name}</span>"
    return f"""
    <div class="cassette js-bukkenCassette">
      <div class="cassettebox-header">
        <span class="cassettebox-hpct">中古マンション</span>
        <h2 class="cassettebox-title">{link}</h2>
      </div>
      <div class="cassettebox-body">
        <div class="ui-media">
          <div class="infodatabox-object">
            <img src="data:image/gif;base64,R0lGOD" rel="https://img.suumo.jp/{name}.jpg">
          </div>
        </div>
        <p class="infodatabox-lead">南向き 角部屋</p>
        <div class="infodatabox-boxgroup">
          <table class="listtable">
            <tr><td>{address}</td></tr>
            <tr><td>{station}</td><td>{walk}</td></tr>
          </table>
          <table class="listtable">
            <tr><td>価格：{price}</td></tr>
            <tr><td>{size}</td><td>{age}</td></tr>
          </table>
        </div>
      </div>
    </div>
    """


def make_listing_page(cards: List[str], max_page: int = 1, total: Optional[int] = None) -> str:
    pager_items = "".join(f"<li><a>{page}</a></li>" for page in range(1, max_page + 1))
    hit = f'<div class="pagination_set-hit">{total:,}<span>件</span></div>' if total else ""
    return f"""
    <html><body>
      {hit}
      {''.join(cards)}
      <div class="pagination pagination_set-nav">
        <ol class="pagination-parts">{pager_items}<li>次へ</li></ol>
      </div>
    </body></html>
    """


def make_detail_page(rows: Optional[Dict[str, str]] = None,
                     description: Optional[str] = "駅近の明るいお部屋です。",
                     features: Optional[str] = "南向き / 角部屋 / ペット相談",
                     coordinates: Optional[tuple] = (35.6895, 139.6917)) -> str:
    rows = rows if rows is not None else {"価格": "7100万円", "専有面積": "75.5m2", "間取り": "3LDK"}
    table_rows = "".join(
        f"<tr><th>{label}</th><td>{value}</td></tr>" for label, value in rows.items()
    )
    description_html = (
        f"<h2>物件の特徴</h2><p>{description}</p>" if description is not None else ""
    )
    features_html = (
        f"<h3>特徴ピックアップ</h3><div>{features}</div>" if features is not None else ""
    )
    script = ""
    if coordinates is not None:
        script = (
            "<script>var map = new google.maps.LatLng(0, 0);"
            f"var point = {{latitude: {coordinates[0]}, longitude: {coordinates[1]}}};</script>"
        )
    return f"""
    <html><body>
      <div id="main">
        <img src="https://img.suumo.jp/a.jpg">
        <img src="https://img.suumo.jp/a.jpg">
        <img rel="https://img.suumo.jp/b.jpg" src="data:image/gif;base64,R0lGOD">
        <img src="https://img.suumo.jp/logo.png">
        <table class="property_view_table">{table_rows}</table>
        {description_html}
        {features_html}
      </div>
      {script}
    </body></html>
    """


# =============================================================================
# FIXTURES
# =============================================================================

START_PATH = "https://suumo.jp/jj/bukken/ichiran/JJ010FJ001/?ar=030&bs=011"
BASE_PATH = "https://suumo.jp"


@pytest.fixture
def collections() -> HarvestCollections:
    return HarvestCollections(
        listings=FakeCollection("listings"),
        details=FakeCollection("details"),
        state=FakeCollection("scraper_state"),
    )


@pytest.fixture
def sleeper() -> RecordingSleeper:
    return RecordingSleeper()


@pytest.fixture
def throttle(sleeper) -> Throttle:
    return Throttle(2.0, 3.0, sleep=sleeper, rng=random.Random(42))
