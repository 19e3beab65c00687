"""
Parsers for exported reading notes.

Each parser recognizes one source's export conventions and decodes them
into a BookBundle. An export may arrive as JSON, as a tag-delimited
pseudo-XML document, as CSV, or as loosely structured plain text with
inline markers; ``parse`` sniffs which one it was given and never raises
on malformed content. When nothing usable can be decoded the placeholder
"Unknown Book" bundle comes back instead.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from bs4 import BeautifulSoup

from notes_model import (
    UNKNOWN_TITLE,
    Annotation,
    AnnotationKind,
    AnnotationSource,
    BookBundle,
    BookMetadata,
    empty_bundle,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

Blob = Union[str, bytes]

DUOKAN_KINDS = {
    "highlight": AnnotationKind.HIGHLIGHT,
    "note": AnnotationKind.NOTE,
    "bookmark": AnnotationKind.BOOKMARK,
    "高亮": AnnotationKind.HIGHLIGHT,
    "笔记": AnnotationKind.NOTE,
    "书签": AnnotationKind.BOOKMARK,
}

WECHAT_KINDS = {
    "highlight": AnnotationKind.HIGHLIGHT,
    "note": AnnotationKind.NOTE,
    "bookmark": AnnotationKind.BOOKMARK,
    "划线": AnnotationKind.HIGHLIGHT,
    "想法": AnnotationKind.NOTE,
    "书签": AnnotationKind.BOOKMARK,
    "高亮": AnnotationKind.HIGHLIGHT,
}

_DATE_PATTERNS = [
    (re.compile(r"(\d{4})[年/-](\d{1,2})[月/-](\d{1,2})日?"), ("y", "m", "d")),
    (re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})"), ("m", "d", "y")),
    (re.compile(r"(\d{1,2})月(\d{1,2})日"), ("m", "d")),
]


# --- Shared helpers ---

def decode_blob(blob: Blob) -> str:
    """Coerce raw bytes or text into a str, dropping any BOM."""
    if isinstance(blob, (bytes, bytearray)):
        return bytes(blob).decode("utf-8-sig", errors="replace")
    return str(blob).lstrip("\ufeff")


def looks_like_json(text: str) -> bool:
    return text.strip()[:1] in ("{", "[")


def is_valid_json(text: str) -> bool:
    try:
        json.loads(text)
        return True
    except (ValueError, RecursionError):
        return False


def looks_like_tag_document(text: str) -> bool:
    return "<?xml" in text or "<notes>" in text


def closed_elements(text: str, name: str) -> List[str]:
    """Inner markup of every ``<name>...</name>`` pair, case-insensitive."""
    pattern = re.compile(r"<%s\b[^>]*>(.*?)</%s\s*>" % (name, name), re.S | re.I)
    return pattern.findall(text)


def _markup_text(markup: str) -> str:
    return BeautifulSoup(markup, "html.parser").get_text()


def split_csv_line(line: str) -> List[str]:
    """
    Split one CSV row on commas outside quotes. Any ``"`` toggles quoting,
    mid-field included; ``""`` inside a quoted span is a literal quote.
    """
    cells = []
    current = []
    in_quotes = False
    i = 0
    while i < len(line):
        char = line[i]
        if char == '"':
            if in_quotes and line[i + 1:i + 2] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            cells.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1
    cells.append("".join(current).strip())
    return cells


def map_kind(value: Any, kinds: Dict[str, AnnotationKind]) -> AnnotationKind:
    """Translate a source's type label; anything unknown is a highlight."""
    if value is None:
        return AnnotationKind.HIGHLIGHT
    return kinds.get(str(value).strip().lower(), AnnotationKind.HIGHLIGHT)


def extract_date(text: str) -> Optional[datetime]:
    """Pull the first recognizable date out of a label line."""
    for pattern, order in _DATE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        parts = dict(zip(order, (int(g) for g in match.groups())))
        try:
            return datetime(parts.get("y", datetime.now().year), parts["m"], parts["d"])
        except ValueError:
            continue
    return None


def coerce_position(value: Any) -> Optional[Union[int, float]]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    text = str(value).strip()
    if re.fullmatch(r"-?\d+", text):
        return int(text)
    try:
        return float(text)
    except ValueError:
        return None


def coerce_created_at(value: Any) -> datetime:
    parsed = parse_timestamp(value)
    if parsed is None and isinstance(value, str):
        parsed = extract_date(value)
    return parsed or datetime.now()


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _tag_text(parent, name: str) -> Optional[str]:
    tag = parent.find(name)
    return _optional_text(tag.get_text()) if tag is not None else None


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def build_bundle(title: Optional[str], author: Optional[str],
                 annotations: List[Annotation], isbn: Optional[str] = None,
                 cover_image: Optional[str] = None) -> BookBundle:
    """Assemble a bundle, stamping every annotation with the bundle title."""
    title = title or UNKNOWN_TITLE
    for annotation in annotations:
        annotation.book_title = title
        if author and not annotation.book_author:
            annotation.book_author = author
    bundle = BookBundle(
        metadata=BookMetadata(title=title, author=author,
                              last_sync_date=datetime.now(),
                              isbn=isbn, cover_image=cover_image),
        annotations=annotations,
    )
    bundle.refresh_count()
    return bundle


def parse_json_export(text: str, source: AnnotationSource,
                      kinds: Dict[str, AnnotationKind]) -> BookBundle:
    """
    Decode the JSON shape both apps can export:
    ``{"bookTitle": ..., "author": ..., "notes": [{...}, ...]}`` or a bare
    list of note objects. Field names are read permissively.
    """
    try:
        data = json.loads(text)
    except (ValueError, RecursionError) as e:
        logger.warning("Malformed %s JSON export: %s", source.value, e)
        return empty_bundle()

    if isinstance(data, list):
        data = {"notes": data}
    if not isinstance(data, dict) or not data:
        return empty_bundle()

    notes = data.get("notes")
    if not isinstance(notes, list):
        notes = []

    book_title = _optional_text(data.get("bookTitle") or data.get("title"))
    author = _optional_text(data.get("author"))
    isbn = _optional_text(data.get("isbn"))
    cover_image = _optional_text(data.get("coverImage") or data.get("cover"))
    stamp = _timestamp_ms()
    annotations = []

    for index, note in enumerate(notes):
        if not isinstance(note, dict):
            continue
        content = _optional_text(note.get("content") or note.get("text"))
        if not content:
            continue

        position = coerce_position(note.get("position"))
        if position is None:
            position = coerce_position(note.get("location"))
        if position is None:
            position = index

        tags = note.get("tags") or []
        if isinstance(tags, str):
            tags = [tags]

        book_title = book_title or _optional_text(note.get("bookTitle"))
        author = author or _optional_text(note.get("author"))

        annotations.append(Annotation(
            id=f"{source.value}_{index}_{stamp}",
            book_title=book_title or UNKNOWN_TITLE,
            book_author=author,
            kind=map_kind(note.get("type") or note.get("noteType"), kinds),
            content=content,
            position=position,
            location_label=_optional_text(note.get("location") or note.get("page")),
            chapter=_optional_text(note.get("chapter") or note.get("section")),
            created_at=coerce_created_at(note.get("createdAt") or note.get("date")),
            tags=[str(t) for t in tags],
            color=_optional_text(note.get("color")),
            source=source,
        ))

    annotations.sort(key=lambda a: a.position or 0)
    return build_bundle(book_title, author, annotations,
                        isbn=isbn, cover_image=cover_image)


# --- Free-text scanning ---

class ScanState(Enum):
    SEEKING_METADATA = "seeking_metadata"
    SEEKING_MARKER = "seeking_marker"
    AWAITING_CONTENT = "awaiting_content"


@dataclass(frozen=True)
class TextScanRules:
    """
    Per-source heuristics for the line scanner. Each source keeps its own
    thresholds.
    """
    source: AnnotationSource
    id_prefix: str
    title_patterns: Tuple[re.Pattern, ...]
    author_patterns: Tuple[re.Pattern, ...]
    chapter_patterns: Tuple[re.Pattern, ...]
    # "marker：rest of line" records
    inline_marker: Optional[re.Pattern] = None
    inline_kinds: Dict[str, AnnotationKind] = field(default_factory=dict)
    # Words that, on a short line of their own, announce the next line
    label_kinds: Dict[str, AnnotationKind] = field(default_factory=dict)
    location_words: Tuple[str, ...] = ()
    label_max_length: int = 30
    follow_min_length: int = 1
    bare_min_length: Optional[int] = None  # None: bare lines are never content
    excluded_words: Tuple[str, ...] = ()
    title_fallback: Optional[re.Pattern] = None


_AUTHOR_PATTERNS = (
    re.compile(r"^作者[:：]\s*(.+)$"),
    re.compile(r"^author\s*[:：]\s*(.+)$", re.IGNORECASE),
)
_CHAPTER_PATTERNS = (
    re.compile(r"^章节[:：]\s*(.*)$"),
    re.compile(r"^(第.{1,12}章.*)$"),
    re.compile(r"^(chapter\s+\S.*)$", re.IGNORECASE),
)
_WECHAT_INLINE = re.compile(r"^(划线|想法|书签|highlight|note|bookmark)\s*[:：]\s*(.*)$",
                            re.IGNORECASE)
_WECHAT_LABELS = {
    "划线": AnnotationKind.HIGHLIGHT,
    "想法": AnnotationKind.NOTE,
    "书签": AnnotationKind.BOOKMARK,
}

DUOKAN_TEXT_RULES = TextScanRules(
    source=AnnotationSource.DUOKAN,
    id_prefix="duokan_txt",
    title_patterns=(
        re.compile(r"^书名[:：]\s*(.+)$"),
        re.compile(r"^title\s*[:：]\s*(.+)$", re.IGNORECASE),
    ),
    author_patterns=_AUTHOR_PATTERNS,
    chapter_patterns=_CHAPTER_PATTERNS[1:],
    inline_marker=re.compile(r"^(高亮|笔记|书签)[:：]\s*(.*)$"),
    inline_kinds={
        "高亮": AnnotationKind.HIGHLIGHT,
        "笔记": AnnotationKind.NOTE,
        "书签": AnnotationKind.BOOKMARK,
    },
    bare_min_length=5,
    excluded_words=("书名", "作者", "读书笔记"),
)

# The app's own export: "微信读书" header, dated marker labels with the
# record on the following line.
WECHAT_EXPORT_RULES = TextScanRules(
    source=AnnotationSource.WECHAT,
    id_prefix="wechat",
    title_patterns=(re.compile(r"^《([^》]+)》"),),
    author_patterns=_AUTHOR_PATTERNS,
    chapter_patterns=_CHAPTER_PATTERNS,
    inline_marker=_WECHAT_INLINE,
    inline_kinds=dict(WECHAT_KINDS),
    label_kinds=dict(_WECHAT_LABELS, 位置=AnnotationKind.BOOKMARK),
    location_words=("书签", "位置"),
    follow_min_length=1,
    title_fallback=re.compile(r"《([^》]+)》"),
)

# Hand-copied notes: "划线：..." lines, or a bare label followed by text.
WECHAT_TEXT_RULES = TextScanRules(
    source=AnnotationSource.WECHAT,
    id_prefix="wechat_txt",
    title_patterns=(re.compile(r"^《([^》]+)》"),),
    author_patterns=_AUTHOR_PATTERNS,
    chapter_patterns=_CHAPTER_PATTERNS,
    inline_marker=_WECHAT_INLINE,
    inline_kinds=dict(WECHAT_KINDS),
    label_kinds=dict(_WECHAT_LABELS),
    follow_min_length=6,
    excluded_words=("《", "作者"),
    title_fallback=re.compile(r"《([^》]+)》"),
)


class TextScanner:
    """
    Single pass over the non-blank lines of a free-text export.

    SEEKING_METADATA consumes title/author lines at the top of the file,
    SEEKING_MARKER looks for chapters and records, and AWAITING_CONTENT
    takes the line right after a standalone marker label as that record's
    content. A line that fails as content is rescanned as SEEKING_MARKER.
    """

    def __init__(self, rules: TextScanRules):
        self.rules = rules
        self.state = ScanState.SEEKING_METADATA
        self.title: Optional[str] = None
        self.author: Optional[str] = None
        self.chapter: Optional[str] = None
        self.annotations: List[Annotation] = []
        self._stamp = _timestamp_ms()
        self._pending: Optional[Dict[str, Any]] = None

    def scan(self, text: str) -> BookBundle:
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        for index, line in enumerate(lines):
            self.feed(index, line)

        if self.title is None and self.rules.title_fallback is not None:
            match = self.rules.title_fallback.search(text)
            if match:
                self.title = match.group(1).strip()
        return build_bundle(self.title, self.author, self.annotations)

    def feed(self, index: int, line: str) -> None:
        if self.state is ScanState.AWAITING_CONTENT:
            pending = self._pending
            self._pending = None
            self.state = ScanState.SEEKING_MARKER
            if self._acceptable_follow_line(line):
                self._emit(pending["kind"], line, pending["index"],
                           created_at=pending["created_at"],
                           location_label=pending["location_label"])
                return

        if self.state is ScanState.SEEKING_METADATA:
            if self._take_metadata(line):
                return
            self.state = ScanState.SEEKING_MARKER

        self._seek_marker(index, line)

    # -- states --

    def _take_metadata(self, line: str) -> bool:
        """Title/author labels. Never content; first value seen wins."""
        for pattern in self.rules.title_patterns:
            match = pattern.match(line)
            if match:
                if self.title is None:
                    self.title = match.group(1).strip()
                return True
        for pattern in self.rules.author_patterns:
            match = pattern.match(line)
            if match:
                if self.author is None:
                    self.author = match.group(1).strip()
                return True
        return False

    def _seek_marker(self, index: int, line: str) -> None:
        rules = self.rules

        if rules.inline_marker is not None:
            match = rules.inline_marker.match(line)
            if match:
                kind = rules.inline_kinds.get(match.group(1).lower(), AnnotationKind.HIGHLIGHT)
                content = match.group(2).strip()
                if content:
                    self._emit(kind, content, index)
                else:
                    self._await(kind, index, line)
                return

        if self._take_metadata(line):
            return

        chapter = self._match_chapter(line)
        if chapter is not None:
            self.chapter = chapter
            return

        label_kind = self._match_label(line)
        if label_kind is not None:
            self._await(label_kind, index, line)
            return

        if self._is_bare_content(line):
            self._emit(AnnotationKind.HIGHLIGHT, line, index)

    def _await(self, kind: AnnotationKind, index: int, line: str) -> None:
        location_label = None
        if any(word in line for word in self.rules.location_words):
            location_label = line
        self._pending = {
            "kind": kind,
            "index": index,
            "created_at": extract_date(line),
            "location_label": location_label,
        }
        self.state = ScanState.AWAITING_CONTENT

    # -- line classification --

    def _match_chapter(self, line: str) -> Optional[str]:
        for pattern in self.rules.chapter_patterns:
            match = pattern.match(line)
            if match:
                return match.group(1).strip() or line
        return None

    def _match_label(self, line: str) -> Optional[AnnotationKind]:
        if len(line) > self.rules.label_max_length:
            return None
        for word, kind in self.rules.label_kinds.items():
            if word in line:
                return kind
        return None

    def _is_marker_line(self, line: str) -> bool:
        if self.rules.inline_marker is not None and self.rules.inline_marker.match(line):
            return True
        if self._match_chapter(line) is not None:
            return True
        if self._match_label(line) is not None:
            return True
        return any(p.match(line) for p in self.rules.title_patterns + self.rules.author_patterns)

    def _acceptable_follow_line(self, line: str) -> bool:
        if len(line) < self.rules.follow_min_length:
            return False
        if any(word in line for word in self.rules.excluded_words):
            return False
        return not self._is_marker_line(line)

    def _is_bare_content(self, line: str) -> bool:
        min_length = self.rules.bare_min_length
        if min_length is None or len(line) <= min_length:
            return False
        if line.isdigit():
            return False
        if any(word in line for word in self.rules.excluded_words):
            return False
        return not self._is_marker_line(line)

    def _emit(self, kind: AnnotationKind, content: str, index: int,
              created_at: Optional[datetime] = None,
              location_label: Optional[str] = None) -> None:
        self.annotations.append(Annotation(
            id=f"{self.rules.id_prefix}_{len(self.annotations)}_{self._stamp}",
            book_title=UNKNOWN_TITLE,
            book_author=self.author,
            kind=kind,
            content=content,
            position=index,
            location_label=location_label,
            chapter=self.chapter,
            created_at=created_at or datetime.now(),
            source=self.rules.source,
        ))


def scan_text(text: str, rules: TextScanRules) -> BookBundle:
    return TextScanner(rules).scan(text)


# --- Parsers ---

class ParserKind(str, Enum):
    DUOKAN = "duokan"
    WECHAT = "wechat"


class NoteParser:
    """
    Base parser. Implementations are stateless: ``detect`` and ``parse``
    are pure functions of the blob they are handed.
    """
    kind: ParserKind
    name: str = ""
    supported_extensions: Tuple[str, ...] = ()

    def detect(self, blob: Blob) -> bool:
        raise NotImplementedError

    def parse(self, blob: Blob) -> BookBundle:
        text = decode_blob(blob)
        try:
            return self._parse_text(text)
        except (ValueError, TypeError, KeyError, AttributeError, RecursionError) as e:
            logger.warning("%s could not decode input: %s", self.name, e, exc_info=True)
            return empty_bundle()

    def _parse_text(self, text: str) -> BookBundle:
        raise NotImplementedError


class DuokanParser(NoteParser):
    """Duokan e-reader exports: JSON, ``<notes>`` tag documents, plain text."""
    kind = ParserKind.DUOKAN
    name = "Duokan Notes Parser"
    supported_extensions = (".txt", ".json", ".xml")

    def detect(self, blob: Blob) -> bool:
        text = decode_blob(blob)
        return ("duokan" in text.lower()
                or "多看" in text
                or "读书笔记" in text
                or looks_like_json(text)
                or is_valid_json(text)
                or looks_like_tag_document(text))

    def _parse_text(self, text: str) -> BookBundle:
        if looks_like_json(text) or is_valid_json(text):
            return parse_json_export(text, AnnotationSource.DUOKAN, DUOKAN_KINDS)
        if looks_like_tag_document(text):
            return self._parse_tags(text)
        return scan_text(text, DUOKAN_TEXT_RULES)

    def _parse_tags(self, text: str) -> BookBundle:
        # Only elements closed in the source count.
        title_blocks = closed_elements(text, "bookTitle")
        author_blocks = closed_elements(text, "author")
        note_blocks = closed_elements(text, "note")
        if not title_blocks and not note_blocks:
            logger.warning("Tag export has neither <bookTitle> nor <note> elements")
            return empty_bundle()

        title = _optional_text(_markup_text(title_blocks[0])) if title_blocks else None
        author = _optional_text(_markup_text(author_blocks[0])) if author_blocks else None
        stamp = _timestamp_ms()
        annotations = []

        for index, block in enumerate(note_blocks):
            if not closed_elements(block, "content"):
                continue
            note = BeautifulSoup(block, "html.parser")
            content_tag = note.find("content")
            if content_tag is None:
                continue
            content = content_tag.get_text().strip()
            if not content:
                continue
            position = coerce_position(_tag_text(note, "position"))
            date_text = _tag_text(note, "date")
            annotations.append(Annotation(
                id=f"duokan_xml_{index}_{stamp}",
                book_title=title or UNKNOWN_TITLE,
                book_author=author,
                kind=map_kind(_tag_text(note, "type"), DUOKAN_KINDS),
                content=content,
                position=index if position is None else position,
                chapter=_tag_text(note, "chapter"),
                created_at=coerce_created_at(date_text) if date_text else datetime.now(),
                color=_tag_text(note, "color"),
                source=AnnotationSource.DUOKAN,
            ))

        annotations.sort(key=lambda a: a.position or 0)
        return build_bundle(title, author, annotations)


class WeChatParser(NoteParser):
    """WeChat Reading exports: the app's text export, JSON, CSV, plain text."""
    kind = ParserKind.WECHAT
    name = "WeChat Reading Parser"
    supported_extensions = (".txt", ".json", ".csv")

    _HEADER_WORDS = ("内容", "content", "章节", "chapter")
    _MARKER_WORDS = ("划线", "想法", "书签", "章节")

    def detect(self, blob: Blob) -> bool:
        text = decode_blob(blob)
        return ("微信读书" in text
                or "WeChat" in text
                or "读书笔记" in text
                or self._is_export_text(text)
                or self._is_titled_text(text)
                or self._has_csv_header(text))

    def _is_export_text(self, text: str) -> bool:
        return "微信读书" in text and any(w in text for w in ("划线", "想法", "章节"))

    def _is_titled_text(self, text: str) -> bool:
        return (re.search(r"《[^》]+》", text) is not None
                and any(w in text for w in self._MARKER_WORDS))

    def _has_csv_header(self, text: str) -> bool:
        first = next((line for line in text.splitlines() if line.strip()), "")
        if "," not in first:
            return False
        return any(w in first.lower() for w in self._HEADER_WORDS)

    def _looks_like_csv(self, text: str) -> bool:
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        if not lines or "," not in lines[0]:
            return False
        return not any(_WECHAT_INLINE.match(line) for line in lines)

    def _parse_text(self, text: str) -> BookBundle:
        if "微信读书" in text and "想法" in text:
            return scan_text(text, WECHAT_EXPORT_RULES)
        if looks_like_json(text) or is_valid_json(text):
            return parse_json_export(text, AnnotationSource.WECHAT, WECHAT_KINDS)
        if self._looks_like_csv(text):
            return self._parse_csv(text)
        return scan_text(text, WECHAT_TEXT_RULES)

    def _parse_csv(self, text: str) -> BookBundle:
        rows = [split_csv_line(line) for line in text.strip().splitlines() if line.strip()]
        if not rows:
            return empty_bundle()

        headers = [h.strip().lower() for h in rows[0]]
        has_headers = any(w in h for h in headers for w in self._HEADER_WORDS)

        def column(*words):
            for i, header in enumerate(headers):
                if any(w in header for w in words):
                    return i
            return -1

        content_col = column("内容", "content")
        chapter_col = column("章节", "chapter")
        type_col = column("类型", "type")
        title_col = column("书名", "booktitle", "book title", "title")
        author_col = column("作者", "author")
        tags_col = column("标签", "tags")
        date_col = column("时间", "date", "created")
        if not has_headers:
            chapter_col = type_col = title_col = author_col = tags_col = date_col = -1

        def cell(row, col):
            return row[col].strip() if 0 <= col < len(row) else ""

        title = None
        author = None
        stamp = _timestamp_ms()
        annotations = []

        for index in range(1 if has_headers else 0, len(rows)):
            row = rows[index]
            if len(row) < 2:
                continue
            content = cell(row, content_col if content_col >= 0 else 0)
            if not content:
                continue

            title = title or cell(row, title_col) or None
            author = author or cell(row, author_col) or None
            tags = [t.strip() for t in re.split(r"[;|]", cell(row, tags_col)) if t.strip()]
            date_text = cell(row, date_col)

            annotations.append(Annotation(
                id=f"wechat_csv_{index}_{stamp}",
                book_title=UNKNOWN_TITLE,
                kind=map_kind(cell(row, type_col) or None, WECHAT_KINDS),
                content=content,
                position=index,
                chapter=cell(row, chapter_col) or None,
                created_at=coerce_created_at(date_text) if date_text else datetime.now(),
                tags=tags,
                source=AnnotationSource.WECHAT,
            ))

        return build_bundle(title, author, annotations)


PARSER_CLASSES = {
    ParserKind.DUOKAN: DuokanParser,
    ParserKind.WECHAT: WeChatParser,
}


def create_parser(kind: ParserKind) -> NoteParser:
    return PARSER_CLASSES[ParserKind(kind)]()


def default_parsers() -> Dict[str, NoteParser]:
    """Built-in parsers keyed by name, in detection order."""
    return {kind.value: create_parser(kind) for kind in (ParserKind.DUOKAN, ParserKind.WECHAT)}
