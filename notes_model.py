"""
Record model for readnotes.
Every parser produces, and the store indexes, the same three shapes:
Annotation, BookMetadata and BookBundle.
"""

import hashlib
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

UNKNOWN_TITLE = "Unknown Book"


class AnnotationKind(str, Enum):
    HIGHLIGHT = "highlight"
    NOTE = "note"
    BOOKMARK = "bookmark"


class AnnotationSource(str, Enum):
    DUOKAN = "duokan"    # e-reader export
    WECHAT = "wechat"    # social reading app export
    MANUAL = "manual"
    OCR = "ocr"


def generate_id() -> str:
    """Generate a unique ID."""
    return hashlib.md5(
        f"{datetime.now().isoformat()}-{os.urandom(8).hex()}".encode()
    ).hexdigest()[:12]


def _format_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Best-effort conversion of ISO strings and epoch numbers to datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # Millisecond epochs are what JavaScript-based exporters write
        seconds = value / 1000.0 if value > 1e11 else float(value)
        try:
            return datetime.fromtimestamp(seconds)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        # Naive local time everywhere so date sorting never mixes kinds
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone().replace(tzinfo=None)
        return parsed
    return None


@dataclass
class Annotation:
    """One highlight, note or bookmark attached to a book."""
    id: str
    book_title: str
    content: str
    kind: AnnotationKind = AnnotationKind.HIGHLIGHT
    source: AnnotationSource = AnnotationSource.MANUAL
    book_author: Optional[str] = None
    position: Optional[Union[int, float]] = None  # Sort hint: sequence index or source location
    location_label: Optional[str] = None
    chapter: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None  # Only set on edit
    tags: List[str] = field(default_factory=list)
    color: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "bookTitle": self.book_title,
            "bookAuthor": self.book_author,
            "kind": self.kind.value,
            "content": self.content,
            "position": self.position,
            "locationLabel": self.location_label,
            "chapter": self.chapter,
            "createdAt": _format_dt(self.created_at),
            "updatedAt": _format_dt(self.updated_at),
            "tags": list(self.tags),
            "color": self.color,
            "source": self.source.value,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Annotation":
        """Rebuild an annotation from its persisted form.

        Also accepts the older ``noteType``/``location`` key names.
        """
        kind = raw.get("kind") or raw.get("noteType") or AnnotationKind.HIGHLIGHT.value
        try:
            kind = AnnotationKind(kind)
        except ValueError:
            kind = AnnotationKind.HIGHLIGHT

        source = raw.get("source") or AnnotationSource.MANUAL.value
        try:
            source = AnnotationSource(source)
        except ValueError:
            source = AnnotationSource.MANUAL

        return cls(
            id=str(raw.get("id") or generate_id()),
            book_title=raw.get("bookTitle") or UNKNOWN_TITLE,
            book_author=raw.get("bookAuthor"),
            kind=kind,
            content=raw.get("content") or "",
            position=raw.get("position"),
            location_label=raw.get("locationLabel", raw.get("location")),
            chapter=raw.get("chapter"),
            created_at=parse_timestamp(raw.get("createdAt")) or datetime.now(),
            updated_at=parse_timestamp(raw.get("updatedAt")),
            tags=[str(t) for t in raw.get("tags") or []],
            color=raw.get("color"),
            source=source,
        )


@dataclass
class BookMetadata:
    """Metadata"""
    title: str
    author: Optional[str] = None
    total_notes: int = 0
    last_sync_date: Optional[datetime] = None
    isbn: Optional[str] = None
    cover_image: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "title": self.title,
            "author": self.author,
            "totalNotes": self.total_notes,
            "lastSyncDate": _format_dt(self.last_sync_date),
        }
        if self.isbn:
            data["isbn"] = self.isbn
        if self.cover_image:
            data["coverImage"] = self.cover_image
        return data

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "BookMetadata":
        return cls(
            title=raw.get("title") or UNKNOWN_TITLE,
            author=raw.get("author"),
            total_notes=int(raw.get("totalNotes") or 0),
            last_sync_date=parse_timestamp(raw.get("lastSyncDate")),
            isbn=raw.get("isbn"),
            cover_image=raw.get("coverImage"),
        )


@dataclass
class BookBundle:
    """
    Metadata plus the annotations produced by a single parse.
    The store keys bundles by metadata.title; every annotation's
    book_title must match it.
    """
    metadata: BookMetadata
    annotations: List[Annotation] = field(default_factory=list)

    @property
    def title(self) -> str:
        return self.metadata.title

    def refresh_count(self) -> None:
        """Keep total_notes in step with the annotation list."""
        self.metadata.total_notes = len(self.annotations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict(),
            "annotations": [a.to_dict() for a in self.annotations],
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "BookBundle":
        if not isinstance(raw, dict):
            raise ValueError("Bundle document must be a JSON object")
        metadata = BookMetadata.from_dict(raw.get("metadata") or {})
        records = raw.get("annotations")
        if records is None:
            records = raw.get("notes") or []
        bundle = cls(
            metadata=metadata,
            annotations=[Annotation.from_dict(r) for r in records],
        )
        bundle.refresh_count()
        return bundle


def empty_bundle() -> BookBundle:
    """The placeholder produced when a parser finds nothing usable."""
    return BookBundle(
        metadata=BookMetadata(title=UNKNOWN_TITLE, author="", total_notes=0,
                              last_sync_date=datetime.now()),
        annotations=[],
    )
