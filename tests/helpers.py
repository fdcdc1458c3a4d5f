import copy
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import requests

from komrpc.config import Settings
from komrpc.errors import AuthError, UnsupportedQuery
from komrpc.models import Book, Library, ReadProgress, Series

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

BASE_CONFIG = {
    "komga": {"base_url": "http://komga.local:25600", "api_key": "secret-key"},
    "integration": {"discord_client_id": "1387202171270861033", "use_imgur_cover": False},
}


def make_settings(exclude=None, integration=None, **general) -> Settings:
    data = copy.deepcopy(BASE_CONFIG)
    data["integration"].update(integration or {})
    data["exclude_libraries"] = exclude or []
    data["general"] = general
    return Settings(**data)


def iso(seconds_ago: float) -> str:
    return (NOW - timedelta(seconds=seconds_ago)).isoformat().replace("+00:00", "Z")


def book(book_id="B1", series_id="S1", library_id="L1", page=42, completed=False,
         seconds_ago: Optional[float] = 10, title=None, authors=None) -> Book:
    return Book.from_json({
        "id": book_id,
        "seriesId": series_id,
        "libraryId": library_id,
        "metadata": {"title": title, "authors": authors or []},
        "readProgress": {
            "page": page,
            "completed": completed,
            "lastModified": iso(seconds_ago) if seconds_ago is not None else None,
        },
    })


class FakeKomga:
    """Stands in for KomgaClient, recording every call."""

    def __init__(self, books: List[Book] = (), series: Dict[str, Series] = None,
                 libraries: List[Library] = (), supports_filter=True, auth_error=False,
                 series_books: Dict[str, List[Book]] = None, progress: Dict[str, ReadProgress] = None,
                 fresh_books: Dict[str, Book] = None):
        self.books = list(books)
        self.series = series or {}
        self.libraries = list(libraries)
        self.supports_filter = supports_filter
        self.auth_error = auth_error
        self.series_books = series_books or {}
        self.progress = progress or {}
        self.fresh_books = fresh_books or {}
        self.calls = []

    def list_in_progress_books(self):
        self.calls.append(("in_progress",))
        if self.auth_error:
            raise AuthError("Komga rejected the API key for api/v1/books (401)")
        if not self.supports_filter:
            raise UnsupportedQuery("readStatus filter returned 400")
        return list(self.books)

    def list_libraries(self):
        self.calls.append(("libraries",))
        return list(self.libraries)

    def list_series(self, library_id):
        self.calls.append(("series", library_id))
        return [s for s in self.series.values() if s.library_id == library_id]

    def list_series_books(self, series_id):
        self.calls.append(("series_books", series_id))
        return list(self.series_books.get(series_id, []))

    def get_series(self, series_id):
        self.calls.append(("get_series", series_id))
        return self.series.get(series_id)

    def get_library(self, library_id):
        self.calls.append(("get_library", library_id))
        return next((lib for lib in self.libraries if lib.id == library_id), None)

    def get_book(self, book_id):
        self.calls.append(("get_book", book_id))
        return self.fresh_books.get(book_id)

    def get_book_progress(self, book_id):
        self.calls.append(("get_progress", book_id))
        return self.progress.get(book_id)

    def close(self):
        self.calls.append(("close",))


class FakeCovers:
    def __init__(self, url: Optional[str] = "https://i.imgur.com/cover.jpg"):
        self.url = url
        self.cache = {}
        self.requested = []

    def resolve_cover(self, series_id):
        self.requested.append(series_id)
        return self.url


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=b""):
        self.status_code = status_code
        self._payload = payload
        self.content = content

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} Error")


class FakeSession:
    """Answers GETs by path (the part after the base URL), records requests."""

    def __init__(self, routes=None, post_response=None):
        self.routes = routes or {}
        self.post_response = post_response
        self.headers = {}
        self.gets = []
        self.posts = []
        self.closed = False

    def get(self, url, params=None, headers=None, timeout=None):
        path = url.split("://", 1)[-1].split("/", 1)[-1]
        self.gets.append((path, dict(params or {})))
        route = self.routes.get(path)
        if callable(route):
            return route(params or {})
        if isinstance(route, Exception):
            raise route
        return route or FakeResponse(404)

    def post(self, url, headers=None, data=None, files=None, timeout=None):
        self.posts.append((url, headers, data))
        if isinstance(self.post_response, Exception):
            raise self.post_response
        return self.post_response or FakeResponse(500)

    def close(self):
        self.closed = True


class FakePresence:
    """Mimics pypresence.Presence."""

    def __init__(self, client_id, pipe=0, connect_error=None):
        self.client_id = client_id
        self.pipe = pipe
        self.connect_error = connect_error
        self.fail_next = None
        self.updates = []
        self.clears = 0
        self.closed = False
        self.connected = False

    def connect(self):
        if self.connect_error:
            raise self.connect_error
        self.connected = True

    def _maybe_fail(self):
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error

    def update(self, **kwargs):
        self._maybe_fail()
        self.updates.append(kwargs)

    def clear(self, pid=None):
        self._maybe_fail()
        self.clears += 1

    def close(self):
        self.closed = True
