from typing import Any, Dict, Iterator, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import Settings
from .errors import AuthError, DataError, TransportError, UnsupportedQuery, UpstreamUnavailable
from .logger import get_logger
from .models import Book, Library, ReadProgress, Series

logger = get_logger()

PAGE_SIZE = 100
IN_PROGRESS_PAGE_SIZE = 20
# Generous; a hung server should eventually error out rather than block forever
DEFAULT_TIMEOUT = 60
# Statuses meaning the in-progress filter itself is not understood
_UNSUPPORTED_STATUSES = {400, 404, 405}


def build_session() -> requests.Session:
    """Create a requests.Session that retries transient server errors."""
    session = requests.Session()
    retry_strategy = Retry(total=3, backoff_factor=1, status_forcelist=[429, 500, 502, 503, 504])
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _page_content(payload: Any) -> Optional[List[Any]]:
    """Items of a Komga page object, or of a plain JSON list."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("content"), list):
        return payload["content"]
    return None


class KomgaClient:
    """Read-only access to the Komga REST API."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.base_url = settings.server_url
        self.session = session or build_session()
        self.session.headers.update({
            "X-API-Key": settings.komga.api_key,
            "Accept": "application/json",
        })

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        try:
            response = self.session.get(self.url(path), params=params, timeout=DEFAULT_TIMEOUT)
        except requests.RequestException as e:
            raise TransportError(f"GET {path} failed: {e}") from e
        return response

    @staticmethod
    def _check_auth(path: str, response: requests.Response):
        if response.status_code == 401:
            raise AuthError(f"Komga rejected the API key for {path} (401)")

    def _primary(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET whose failure fails the whole cycle."""
        response = self._get(path, params)
        self._check_auth(path, response)
        if not response.ok:
            raise UpstreamUnavailable(f"GET {path} returned {response.status_code}", response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"GET {path} returned invalid JSON: {e}", response.status_code) from e

    def _secondary(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET whose failure only costs us a field; None when unavailable."""
        try:
            response = self._get(path, params)
        except TransportError as e:
            logger.debug(f"{e}")
            return None
        if not response.ok:
            logger.debug(f"GET {path} returned {response.status_code}")
            return None
        try:
            return response.json()
        except ValueError:
            logger.debug(f"GET {path} returned invalid JSON")
            return None

    def _paged(self, path: str, params: Optional[Dict[str, Any]] = None, primary: bool = True) -> Iterator[Any]:
        """Yields raw items across all pages of a Komga listing."""
        page = 0
        while True:
            query = dict(params or {}, page=page, size=PAGE_SIZE)
            payload = self._primary(path, query) if primary else self._secondary(path, query)
            items = _page_content(payload)
            if items is None:
                if primary:
                    raise UpstreamUnavailable(f"GET {path} returned an unexpected payload")
                return
            yield from items
            if not isinstance(payload, dict) or payload.get("last", True) or not items:
                return
            page += 1

    @staticmethod
    def _parse_all(model, items) -> list:
        parsed = []
        for item in items:
            try:
                parsed.append(model.from_json(item))
            except DataError as e:
                logger.debug(f"Skipping malformed entry: {e}")
        return parsed

    # -------------------------
    # Primary listings
    # -------------------------
    def list_in_progress_books(self) -> List[Book]:
        """Books the user has started but not finished, most recently read first."""
        path = "api/v1/books"
        params = {"readStatus": "IN_PROGRESS", "sort": "lastModified,desc", "size": IN_PROGRESS_PAGE_SIZE}
        response = self._get(path, params)
        self._check_auth(path, response)
        if response.status_code in _UNSUPPORTED_STATUSES:
            raise UnsupportedQuery(f"GET {path} with readStatus filter returned {response.status_code}")
        if not response.ok:
            raise UpstreamUnavailable(f"GET {path} returned {response.status_code}", response.status_code)
        try:
            items = _page_content(response.json())
        except ValueError:
            items = None
        if items is None:
            raise UnsupportedQuery(f"GET {path} returned something other than a book page")
        return self._parse_all(Book, items)

    def list_libraries(self) -> List[Library]:
        payload = self._primary("api/v1/libraries")
        items = _page_content(payload)
        if items is None:
            raise UpstreamUnavailable("GET api/v1/libraries returned an unexpected payload")
        return self._parse_all(Library, items)

    def list_series(self, library_id: str) -> List[Series]:
        return self._parse_all(Series, self._paged("api/v1/series", {"library_id": library_id}))

    # -------------------------
    # Secondary lookups
    # -------------------------
    def list_series_books(self, series_id: str) -> List[Book]:
        return self._parse_all(Book, self._paged(f"api/v1/series/{series_id}/books", primary=False))

    def get_series(self, series_id: str) -> Optional[Series]:
        return self._optional(Series, self._secondary(f"api/v1/series/{series_id}"))

    def get_library(self, library_id: str) -> Optional[Library]:
        return self._optional(Library, self._secondary(f"api/v1/libraries/{library_id}"))

    def get_book(self, book_id: str) -> Optional[Book]:
        return self._optional(Book, self._secondary(f"api/v1/books/{book_id}"))

    def get_book_progress(self, book_id: str) -> Optional[ReadProgress]:
        return ReadProgress.from_json(self._secondary(f"api/v1/books/{book_id}/progress"))

    def series_thumbnail_url(self, series_id: str) -> str:
        return self.url(f"api/v1/series/{series_id}/thumbnail")

    def get_series_thumbnail(self, series_id: str) -> Optional[bytes]:
        """Raw cover bytes, or None (404 included)."""
        path = f"api/v1/series/{series_id}/thumbnail"
        try:
            response = self._get(path)
        except TransportError as e:
            logger.debug(f"{e}")
            return None
        if response.status_code == 404:
            logger.debug(f"No thumbnail for series {series_id}")
            return None
        if not response.ok:
            logger.debug(f"GET {path} returned {response.status_code}")
            return None
        return response.content or None

    @staticmethod
    def _optional(model, payload):
        if payload is None:
            return None
        try:
            return model.from_json(payload)
        except DataError as e:
            logger.debug(f"Ignoring malformed response: {e}")
            return None

    def close(self):
        self.session.close()
