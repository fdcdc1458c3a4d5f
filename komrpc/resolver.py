"""
Works out what the user is reading right now.

Candidates (in-progress books) come from one of two sources: Komga's own
read-status filter, or, for servers that do not understand it, a full scan of
libraries, series and books. The newest candidate wins, provided its last page
turn is recent enough and its library is not excluded.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from .client import KomgaClient
from .config import Settings
from .cover import CoverResolver
from .errors import UnsupportedQuery
from .logger import get_logger
from .models import Active, Book, CurrentActivity, Idle, Library, PresenceState, Series, join_authors

logger = get_logger()

DEFAULT_CAPTION = "Komga"


@dataclass(slots=True)
class Candidate:
    book: Book
    library: Optional[Library] = None
    series: Optional[Series] = None

    @property
    def timestamp(self) -> Optional[datetime]:
        return self.book.timestamp()

    @property
    def series_id(self) -> Optional[str]:
        return self.book.series_id or (self.series.id if self.series else None)


# -------------------------
# Candidate sources
# -------------------------
class InProgressSource:
    """Server-side filter: readStatus=IN_PROGRESS, newest first."""

    name = "in-progress filter"

    def candidates(self, client: KomgaClient) -> List[Candidate]:
        return [Candidate(book) for book in client.list_in_progress_books()]


class LibraryScanSource:
    """Walks every library, series and book and keeps what is in progress."""

    name = "library scan"

    def candidates(self, client: KomgaClient) -> List[Candidate]:
        libraries = client.list_libraries()
        if not libraries:
            logger.info("No libraries found in Komga")
            return []

        found = []
        for library in libraries:
            for series in client.list_series(library.id):
                if series.failed:
                    continue
                for book in client.list_series_books(series.id):
                    if book.read_progress is None:
                        book = replace(book, read_progress=client.get_book_progress(book.id))
                    if book.in_progress:
                        found.append(Candidate(book, library=library, series=series))
        return found


# -------------------------
# Field extraction
# -------------------------
Extractor = Callable[[Candidate], Optional[str]]

TITLE_CHAIN: Sequence[Extractor] = (
    lambda c: c.series.title if c.series else None,
    lambda c: c.series.metadata_title if c.series else None,
)

AUTHOR_CHAIN: Sequence[Extractor] = (
    lambda c: join_authors(c.book.authors),
    lambda c: join_authors(c.series.authors) if c.series else None,
    lambda c: c.library.name if c.library else None,
)


def first_available(chain: Sequence[Extractor], candidate: Candidate, default: str) -> str:
    for extract in chain:
        value = extract(candidate)
        if value:
            return value
    return default


def page_display(book: Book) -> str:
    page = book.read_progress.page if book.read_progress else None
    return f"(Page {page})" if page is not None else ""


# -------------------------
# Resolver
# -------------------------
class ActivityResolver:
    """Picks the single book being read right now, or Idle."""

    def __init__(self, sources=None):
        self.sources = list(sources or (InProgressSource(), LibraryScanSource()))
        self._source_index = 0

    @property
    def source(self):
        return self.sources[self._source_index]

    def _gather(self, client: KomgaClient) -> List[Candidate]:
        while True:
            try:
                return self.source.candidates(client)
            except UnsupportedQuery as e:
                if self._source_index + 1 >= len(self.sources):
                    raise
                self._source_index += 1
                logger.info(f"{e}; switching to {self.source.name}")

    def resolve(self, client: KomgaClient, settings: Settings, covers: CoverResolver,
                now: Optional[datetime] = None) -> PresenceState:
        now = now or datetime.now(timezone.utc)

        candidates = [c for c in self._gather(client) if c.book.in_progress]
        if not candidates:
            return Idle("no books in progress")

        # Undated candidates can never win
        dated = sorted((c for c in candidates if c.timestamp is not None),
                       key=lambda c: c.timestamp, reverse=True)
        if not dated:
            return Idle("no read progress with a usable timestamp")

        if not self._is_fresh(dated[0], settings, now):
            return Idle(f"last activity at {dated[0].timestamp.isoformat()} is too old")

        selected = self._select(client, dated)
        if selected is None:
            return Idle("only series that failed processing are in progress")
        if not self._is_fresh(selected, settings, now):
            return Idle(f"last activity at {selected.timestamp.isoformat()} is too old")

        selected = self._with_library(client, selected)
        if selected.library is None and settings.exclude_libraries:
            logger.debug(f"Library of book {selected.book.id} is unknown, cannot apply exclusions")
            return Idle("library unknown; exclusion list cannot be checked")
        if selected.library and settings.is_excluded(selected.library.name):
            logger.debug(f"Book {selected.book.id} is in excluded library '{selected.library.name}'")
            return Idle(f"library '{selected.library.name}' is excluded")

        return Active(self._describe(client, settings, covers, selected))

    @staticmethod
    def _is_fresh(candidate: Candidate, settings: Settings, now: datetime) -> bool:
        age = (now - candidate.timestamp).total_seconds()
        return age < settings.freshness_window

    @staticmethod
    def _select(client: KomgaClient, dated: List[Candidate]) -> Optional[Candidate]:
        """Newest candidate whose series did not fail processing."""
        for candidate in dated:
            series = candidate.series
            if series is None and candidate.book.series_id:
                series = client.get_series(candidate.book.series_id)
            if series is not None and series.failed:
                logger.debug(f"Skipping series {series.id}: processing failed")
                continue
            return replace(candidate, series=series)
        return None

    @staticmethod
    def _with_library(client: KomgaClient, candidate: Candidate) -> Candidate:
        if candidate.library is not None:
            return candidate
        library_id = candidate.book.library_id or (candidate.series.library_id if candidate.series else None)
        if not library_id:
            return candidate
        return replace(candidate, library=client.get_library(library_id))

    @staticmethod
    def _describe(client: KomgaClient, settings: Settings, covers: CoverResolver,
                  candidate: Candidate) -> CurrentActivity:
        # Listings lag behind; re-read the book for the latest page
        fresh = client.get_book(candidate.book.id)
        if fresh is not None:
            book = replace(
                fresh,
                read_progress=fresh.read_progress or candidate.book.read_progress,
                authors=fresh.authors or candidate.book.authors,
                title=fresh.title or candidate.book.title,
            )
            candidate = replace(candidate, book=book)

        series_id = candidate.series_id
        return CurrentActivity(
            series_id=series_id or "",
            series_title=first_available(TITLE_CHAIN, candidate, "Untitled"),
            author_text=first_available(AUTHOR_CHAIN, candidate, "Unknown Author"),
            page_display=page_display(candidate.book) if settings.show_progress else "",
            cover_url=covers.resolve_cover(series_id) if series_id else None,
            caption=candidate.book.title or DEFAULT_CAPTION,
        )
