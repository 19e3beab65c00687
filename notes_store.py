"""
Annotation store for readnotes.
Keeps two in-memory indexes (book title -> bundle, annotation id -> annotation),
routes incoming exports to a parser, and persists one JSON document per book.
Titles and IDs that collide with stored ones get a numeric suffix
(``Title``, ``Title_1``, ``Title_2`` ...) instead of being merged.
"""

import json
import logging
import os
import re
import sys
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from note_parsers import Blob, NoteParser, coerce_position, default_parsers
from note_renderer import RENDERERS, Renderer, RenderOptions
from notes_model import (
    UNKNOWN_TITLE,
    Annotation,
    AnnotationKind,
    BookBundle,
)

logger = logging.getLogger(__name__)

# Fields update_annotation may change; identity fields are never editable
UPDATABLE_FIELDS = ("content", "kind", "tags", "color", "chapter", "location_label", "position")
_FIELD_ALIASES = {"locationLabel": "location_label", "noteType": "kind", "type": "kind"}


class NotesError(Exception):
    """Base exception for readnotes errors."""
    pass


class UnsupportedFormatError(NotesError):
    """No registered parser recognizes the input (or the hint names none)."""
    pass


@dataclass
class StoreConfig:
    """Where the store keeps its files."""
    storage_dir: str = "data/notes"
    export_dir: Optional[str] = None  # Defaults to <storage_dir>/exports
    auto_save: bool = True

    def __post_init__(self):
        if not self.export_dir:
            self.export_dir = os.path.join(self.storage_dir, "exports")

    @classmethod
    def from_env(cls) -> "StoreConfig":
        """Load config from environment variables."""
        auto_save = os.environ.get("READNOTES_AUTO_SAVE", "1").strip().lower()
        return cls(
            storage_dir=os.environ.get("READNOTES_STORAGE_DIR", "data/notes"),
            export_dir=os.environ.get("READNOTES_EXPORT_DIR") or None,
            auto_save=auto_save not in ("0", "false", "no", "off"),
        )


@dataclass
class StoreEvent:
    """A successful store operation: imported, exported, updated, deleted, book_deleted."""
    kind: str
    payload: Dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())


@dataclass
class StoreError:
    """A failure reported on the error channel."""
    message: str
    error: Exception
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())


def sanitize_filename(name: str) -> str:
    """Replace characters that are unsafe in filenames and collapse whitespace."""
    safe_name = re.sub(r'[<>:"/\\|?*]', "_", name)
    safe_name = re.sub(r"\s+", "_", safe_name)
    return safe_name or "untitled"


def _unique_key(base: str, existing: Dict[str, Any]) -> str:
    key = base
    counter = 1
    while key in existing:
        key = f"{base}_{counter}"
        counter += 1
    return key


class AnnotationStore:
    """
    Owns the parser and renderer registries and both indexes.

    Every operation touching the indexes runs under one store-wide lock.
    Success notifications and errors go to separate listener channels.
    """

    def __init__(self, config: Optional[StoreConfig] = None):
        self.config = config or StoreConfig()
        self._parsers: Dict[str, NoteParser] = default_parsers()
        self._renderers: Dict[str, Renderer] = {name: cls() for name, cls in RENDERERS.items()}
        self._books: Dict[str, BookBundle] = {}
        self._annotations: Dict[str, Annotation] = {}
        self._lock = threading.RLock()
        self._listeners: List[Callable[[StoreEvent], None]] = []
        self._error_listeners: List[Callable[[StoreError], None]] = []

    # ========== Notifications ==========

    def subscribe(self, listener: Callable[[StoreEvent], None]) -> Callable[[], None]:
        """Register a listener for successful operations. Returns an unsubscribe callable."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def subscribe_errors(self, listener: Callable[[StoreError], None]) -> Callable[[], None]:
        """Register a listener on the error channel."""
        self._error_listeners.append(listener)
        return lambda: (self._error_listeners.remove(listener)
                        if listener in self._error_listeners else None)

    def _emit(self, kind: str, **payload):
        event = StoreEvent(kind=kind, payload=payload)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Store listener failed on %s event", kind)

    def _emit_error(self, message: str, error: Exception):
        logger.error("%s: %s", message, error)
        report = StoreError(message=message, error=error)
        for listener in list(self._error_listeners):
            try:
                listener(report)
            except Exception:
                logger.exception("Store error listener failed")

    # ========== Registries ==========

    def add_parser(self, name: str, parser: NoteParser):
        """Register (or replace) a parser; new names are probed last."""
        with self._lock:
            self._parsers[name] = parser

    def add_renderer(self, name: str, renderer: Renderer):
        with self._lock:
            self._renderers[name] = renderer

    def parser_names(self) -> List[str]:
        return list(self._parsers.keys())

    def renderer_names(self) -> List[str]:
        return list(self._renderers.keys())

    def _select_parser(self, blob: Blob, format_hint: Optional[str]) -> NoteParser:
        if format_hint:
            name = str(getattr(format_hint, "value", format_hint))
            parser = self._parsers.get(name)
            if parser is None:
                raise UnsupportedFormatError(
                    f"Unknown parser '{name}'. Available: {', '.join(self._parsers)}"
                )
            return parser

        for parser in list(self._parsers.values()):
            if parser.detect(blob):
                return parser
        raise UnsupportedFormatError("No suitable parser found for this file format")

    def _get_renderer(self, name: str) -> Renderer:
        renderer = self._renderers.get(name)
        if renderer is None:
            raise ValueError(f"Unknown renderer: {name}")
        return renderer

    # ========== Import ==========

    def import_from(self, blob: Blob, format_hint: Optional[str] = None) -> BookBundle:
        """
        Parse an exported blob and store the result.

        Args:
            blob: Exported notes as text or raw bytes
            format_hint: Parser name; skips detection when given

        Returns:
            The stored bundle, carrying its collision-free title and IDs

        Raises:
            UnsupportedFormatError: No parser matched (also reported on
                the error channel)
        """
        try:
            parser = self._select_parser(blob, format_hint)
        except UnsupportedFormatError as e:
            self._emit_error("Failed to import notes", e)
            raise

        bundle = parser.parse(blob)
        stored = self.add_bundle(bundle, notify=False)
        logger.info("Imported %d notes for '%s' with %s",
                    len(stored.annotations), stored.title, parser.name)
        self._emit("imported", title=stored.title, count=len(stored.annotations))
        return stored

    def import_file(self, path: str, format_hint: Optional[str] = None) -> BookBundle:
        """Read an export file from disk and import it."""
        try:
            with open(path, "rb") as f:
                blob = f.read()
        except OSError as e:
            self._emit_error(f"Failed to read {path}", e)
            raise
        return self.import_from(blob, format_hint)

    def add_bundle(self, bundle: BookBundle, notify: bool = True) -> BookBundle:
        """
        Store a bundle built outside the parsers (manual entry, OCR).
        The bundle is adopted as-is: its title and IDs may be suffixed.
        """
        with self._lock:
            stored = self._ingest(bundle)
        if notify:
            self._emit("imported", title=stored.title, count=len(stored.annotations))
        if self.config.auto_save:
            self._autosave(stored)
        return stored

    def _ingest(self, bundle: BookBundle) -> BookBundle:
        title = _unique_key(bundle.metadata.title or UNKNOWN_TITLE, self._books)
        bundle.metadata.title = title

        for annotation in bundle.annotations:
            annotation.book_title = title
            annotation.id = _unique_key(annotation.id, self._annotations)
            self._annotations[annotation.id] = annotation

        bundle.refresh_count()
        self._books[title] = bundle
        return bundle

    # ========== Lookups ==========

    def list_books(self) -> List[BookBundle]:
        with self._lock:
            return list(self._books.values())

    def get_book(self, title: str) -> Optional[BookBundle]:
        with self._lock:
            return self._books.get(title)

    def list_all_annotations(self) -> List[Annotation]:
        with self._lock:
            return list(self._annotations.values())

    def get_annotations_for_book(self, title: str) -> List[Annotation]:
        with self._lock:
            bundle = self._books.get(title)
            return list(bundle.annotations) if bundle else []

    def get_annotation_by_id(self, annotation_id: str) -> Optional[Annotation]:
        with self._lock:
            return self._annotations.get(annotation_id)

    # ========== Mutations ==========

    def update_annotation(self, annotation_id: str, updates: Dict[str, Any]) -> bool:
        """Merge editable fields into an annotation and stamp updated_at."""
        changes = {}
        for key, value in updates.items():
            name = _FIELD_ALIASES.get(key, key)
            if name not in UPDATABLE_FIELDS:
                logger.warning("Ignoring non-editable annotation field '%s'", key)
                continue
            if name == "kind":
                try:
                    value = AnnotationKind(value)
                except ValueError:
                    return False
            elif name == "tags":
                if isinstance(value, str):
                    value = [value]
                value = [str(t) for t in value or []]
            elif name == "position" and value is not None:
                value = coerce_position(value)
                if value is None:
                    return False
            changes[name] = value

        with self._lock:
            annotation = self._annotations.get(annotation_id)
            if annotation is None:
                return False
            for name, value in changes.items():
                setattr(annotation, name, value)
            annotation.updated_at = datetime.now()
            bundle = self._books.get(annotation.book_title)

        if bundle is not None and self.config.auto_save:
            self._autosave(bundle)
        self._emit("updated", id=annotation_id)
        return True

    def delete_annotation(self, annotation_id: str) -> bool:
        """Delete an annotation from both indexes."""
        with self._lock:
            annotation = self._annotations.pop(annotation_id, None)
            if annotation is None:
                return False
            bundle = self._books.get(annotation.book_title)
            if bundle is not None:
                bundle.annotations = [a for a in bundle.annotations if a.id != annotation_id]
                bundle.refresh_count()

        if bundle is not None and self.config.auto_save:
            self._autosave(bundle)
        self._emit("deleted", id=annotation_id)
        return True

    def delete_book(self, title: str) -> bool:
        """Delete a book and every annotation it owns."""
        with self._lock:
            bundle = self._books.get(title)
            if bundle is None:
                return False
            for annotation in bundle.annotations:
                self._annotations.pop(annotation.id, None)
            del self._books[title]

        if self.config.auto_save:
            path = self._storage_path(title)
            try:
                if os.path.exists(path):
                    os.remove(path)
            except OSError as e:
                self._emit_error(f"Failed to remove stored notes for '{title}'", e)
        self._emit("book_deleted", title=title, count=len(bundle.annotations))
        return True

    # ========== Queries ==========

    def search(self, query: str) -> List[Annotation]:
        """Case-insensitive match on content, book title, chapter and tags."""
        query_lower = query.lower()
        with self._lock:
            return [
                a for a in self._annotations.values()
                if query_lower in a.content.lower()
                or query_lower in a.book_title.lower()
                or (a.chapter and query_lower in a.chapter.lower())
                or any(query_lower in tag.lower() for tag in a.tags)
            ]

    def statistics(self) -> dict:
        """Book and annotation counts, broken down by source and kind."""
        with self._lock:
            by_source: Dict[str, int] = {}
            by_kind: Dict[str, int] = {}
            for a in self._annotations.values():
                by_source[a.source.value] = by_source.get(a.source.value, 0) + 1
                by_kind[a.kind.value] = by_kind.get(a.kind.value, 0) + 1
            return {
                'total_books': len(self._books),
                'total_annotations': len(self._annotations),
                'by_source': by_source,
                'by_kind': by_kind,
            }

    # ========== Export ==========

    def render_book(self, title: str, renderer_name: str = "markdown",
                    options: Union[RenderOptions, Dict[str, Any], None] = None) -> Optional[str]:
        """Render a book without writing it anywhere."""
        if not isinstance(options, RenderOptions):
            options = RenderOptions.from_dict(options)
        with self._lock:
            bundle = self._books.get(title)
            if bundle is None:
                return None
            renderer = self._get_renderer(renderer_name)
            return renderer.render_bundle(bundle, options)

    def export_book(self, title: str, renderer_name: str = "markdown",
                    options: Union[RenderOptions, Dict[str, Any], None] = None) -> Optional[str]:
        """
        Render a book and write it under the export directory.

        Returns:
            The written path, or None when the title is unknown
        """
        try:
            text = self.render_book(title, renderer_name, options)
        except ValueError as e:
            self._emit_error("Failed to export notes", e)
            raise
        if text is None:
            return None

        renderer = self._renderers[renderer_name]
        filename = f"{sanitize_filename(title)}_{int(time.time() * 1000)}{renderer.extension}"
        path = os.path.join(self.config.export_dir, filename)
        try:
            os.makedirs(self.config.export_dir, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(text)
        except OSError as e:
            self._emit_error("Failed to export notes", e)
            raise

        logger.info("Exported '%s' to %s", title, path)
        self._emit("exported", title=title, format=renderer_name, path=path)
        return path

    def export_all(self, renderer_name: str = "markdown",
                   options: Union[RenderOptions, Dict[str, Any], None] = None) -> List[str]:
        """Export every book; a failing book is logged and skipped."""
        paths = []
        for bundle in self.list_books():
            try:
                path = self.export_book(bundle.title, renderer_name, options)
            except (OSError, ValueError) as e:
                logger.error("Failed to export notes for '%s': %s", bundle.title, e)
                continue
            if path:
                paths.append(path)
        return paths

    # ========== Persistence ==========

    def _ensure_dir(self):
        """Ensure storage directory exists."""
        if not os.path.exists(self.config.storage_dir):
            os.makedirs(self.config.storage_dir, exist_ok=True)

    def _storage_path(self, title: str) -> str:
        return os.path.join(self.config.storage_dir, f"{sanitize_filename(title)}.json")

    def persist(self, bundle: BookBundle) -> str:
        """Write one bundle to disk (atomic write). Returns the file path."""
        self._ensure_dir()
        path = self._storage_path(bundle.title)
        with self._lock:
            data = bundle.to_dict()

        # Atomic write via temp-file + rename
        tmp_path = path + ".tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
        return path

    def _autosave(self, bundle: BookBundle):
        try:
            self.persist(bundle)
        except OSError as e:
            self._emit_error(f"Failed to save notes for '{bundle.title}'", e)

    def load_all(self) -> int:
        """
        Load every persisted bundle from the storage directory.

        Each file goes through the same ingestion as an import, so title and
        ID collisions are suffixed. A file that fails to load is reported and
        skipped. Returns the number of bundles loaded.
        """
        if not os.path.isdir(self.config.storage_dir):
            return 0

        loaded = 0
        for name in sorted(os.listdir(self.config.storage_dir)):
            if not name.endswith(".json"):
                continue
            path = os.path.join(self.config.storage_dir, name)
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    raw = json.load(f)
                bundle = BookBundle.from_dict(raw)
            except (OSError, ValueError, TypeError, AttributeError) as e:
                self._emit_error(f"Failed to load {name}", e)
                continue

            with self._lock:
                self._ingest(bundle)
            loaded += 1

        logger.info("Loaded %d stored books from %s", loaded, self.config.storage_dir)
        return loaded


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python notes_store.py <export-file> [parser]")
        sys.exit(1)

    logging.basicConfig(level=logging.INFO)
    store = AnnotationStore(StoreConfig.from_env())
    store.load_all()
    hint = sys.argv[2] if len(sys.argv) > 2 else None

    try:
        bundle = store.import_file(sys.argv[1], hint)
    except (OSError, UnsupportedFormatError) as e:
        print(f"Import failed: {e}")
        sys.exit(1)

    stats = store.statistics()
    print("\n--- Summary ---")
    print(f"Title: {bundle.title}")
    print(f"Author: {bundle.metadata.author or 'Unknown'}")
    print(f"Notes: {bundle.metadata.total_notes}")
    print(f"Books in store: {stats['total_books']}")
