import enum
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional, Union

from .errors import DataError

# Epoch values above this are milliseconds
_MILLIS_THRESHOLD = 10 ** 11
# Jackson trims trailing zeros; Python 3.10 fromisoformat wants 3 or 6 digits
_FRACTION = re.compile(r"\.(\d+)")


def parse_timestamp(raw: Any) -> Optional[datetime]:
    """Parses an ISO-8601 string or an epoch number into an aware UTC datetime."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return None
        if raw.lstrip("-").isdigit():
            raw = int(raw)
    if isinstance(raw, (int, float)):
        seconds = raw / 1000.0 if raw > _MILLIS_THRESHOLD else float(raw)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(raw, str):
        return None
    try:
        normalized = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), raw.replace("Z", "+00:00"), count=1)
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class ProcessingStatus(enum.Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def parse(cls, raw: Union[str, dict, None]) -> Optional["ProcessingStatus"]:
        if isinstance(raw, dict):
            raw = raw.get("status")
        if not isinstance(raw, str):
            return None
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return None


@dataclass(slots=True)
class Author:
    name: str
    sort_name: Optional[str] = None
    role: Optional[str] = None

    @classmethod
    def list_from_json(cls, raw: Any) -> List["Author"]:
        if not isinstance(raw, list):
            return []
        authors = []
        for entry in raw:
            if isinstance(entry, str) and entry.strip():
                authors.append(cls(name=entry.strip()))
            elif isinstance(entry, dict) and _text(entry.get("name")):
                authors.append(cls(
                    name=_text(entry.get("name")),
                    sort_name=_text(entry.get("fileAs")) or _text(entry.get("sortName")),
                    role=_text(entry.get("role")),
                ))
        return authors


def join_authors(authors: List[Author]) -> Optional[str]:
    """Comma separated names, duplicates dropped, order kept."""
    names = []
    for author in authors:
        if author.name not in names:
            names.append(author.name)
    return ", ".join(names) or None


@dataclass(slots=True)
class Library:
    id: str
    name: str
    kind: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> "Library":
        if not isinstance(data, dict) or not data.get("id"):
            raise DataError(f"Library entry without id: {data!r}")
        return cls(id=str(data["id"]), name=_text(data.get("name")) or "", kind=_text(data.get("type")))


@dataclass(slots=True)
class Series:
    id: str
    title: Optional[str] = None
    metadata_title: Optional[str] = None
    authors: List[Author] = field(default_factory=list)
    processing_status: Optional[ProcessingStatus] = None
    library_id: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> "Series":
        if not isinstance(data, dict) or not data.get("id"):
            raise DataError(f"Series entry without id: {data!r}")
        metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
        books_metadata = data.get("booksMetadata") if isinstance(data.get("booksMetadata"), dict) else {}
        authors = Author.list_from_json(data.get("authors")) or Author.list_from_json(books_metadata.get("authors"))
        return cls(
            id=str(data["id"]),
            title=_text(data.get("title")),
            metadata_title=_text(metadata.get("title")),
            authors=authors,
            processing_status=ProcessingStatus.parse(data.get("processingStatus")),
            library_id=_text(data.get("libraryId")),
        )

    @property
    def failed(self) -> bool:
        return self.processing_status is ProcessingStatus.FAILED


@dataclass(slots=True)
class ReadProgress:
    page: Optional[int] = None
    completed: bool = False
    last_modified: Any = None

    @classmethod
    def from_json(cls, data: Any) -> Optional["ReadProgress"]:
        if not isinstance(data, dict):
            return None
        page = data.get("page")
        try:
            page = int(page) if page is not None and not isinstance(page, bool) else None
        except (TypeError, ValueError):
            page = None
        last_modified = data.get("lastModified")
        if last_modified is None:
            last_modified = data.get("readDate", data.get("updated_at"))
        return cls(page=page, completed=bool(data.get("completed", False)), last_modified=last_modified)

    def timestamp(self) -> Optional[datetime]:
        return parse_timestamp(self.last_modified)


@dataclass(slots=True)
class Book:
    id: str
    series_id: Optional[str] = None
    library_id: Optional[str] = None
    title: Optional[str] = None
    authors: List[Author] = field(default_factory=list)
    read_progress: Optional[ReadProgress] = None

    @classmethod
    def from_json(cls, data: Any) -> "Book":
        if not isinstance(data, dict) or not data.get("id"):
            raise DataError(f"Book entry without id: {data!r}")
        metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
        return cls(
            id=str(data["id"]),
            series_id=_text(data.get("seriesId")),
            library_id=_text(data.get("libraryId")),
            title=_text(metadata.get("title")) or _text(data.get("title")) or _text(data.get("name")),
            authors=Author.list_from_json(metadata.get("authors")),
            read_progress=ReadProgress.from_json(data.get("readProgress")),
        )

    @property
    def in_progress(self) -> bool:
        return self.read_progress is not None and not self.read_progress.completed

    def timestamp(self) -> Optional[datetime]:
        return self.read_progress.timestamp() if self.read_progress else None


@dataclass(slots=True, frozen=True)
class CurrentActivity:
    series_id: str
    series_title: str
    author_text: str
    page_display: str = ""
    cover_url: Optional[str] = None
    caption: Optional[str] = None

    @property
    def details(self) -> str:
        """Top line: series title with the page suffix, if any."""
        if self.page_display:
            return f"{self.series_title} {self.page_display}"
        return self.series_title


@dataclass(slots=True, frozen=True)
class Active:
    activity: CurrentActivity


@dataclass(slots=True, frozen=True)
class Idle:
    reason: str = ""


PresenceState = Union[Active, Idle]
