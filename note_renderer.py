"""
Renders annotations as Markdown.
Two renderers ship: the full "markdown" layout with metadata, locations,
tags and timestamps, and a "simple" content-only layout.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from notes_model import Annotation, AnnotationKind, BookBundle

UNCATEGORIZED = "Uncategorized"
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

KIND_HEADINGS = {
    AnnotationKind.HIGHLIGHT: "Highlight",
    AnnotationKind.NOTE: "Note",
    AnnotationKind.BOOKMARK: "Bookmark",
}


@dataclass
class RenderOptions:
    """Options controlling what a rendered document contains."""
    include_metadata: bool = True
    include_location: bool = True
    include_tags: bool = True
    group_by_chapter: bool = False
    sort_by: Literal["position", "date", "chapter"] = "position"

    def __post_init__(self):
        valid_sorts = ("position", "date", "chapter")
        if self.sort_by not in valid_sorts:
            raise ValueError(
                f"sort_by must be one of {valid_sorts}, got {self.sort_by!r}"
            )

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "RenderOptions":
        """Build options from a request payload (camelCase or snake_case)."""
        raw = raw or {}
        aliases = {
            "include_metadata": ("includeMetadata", "include_metadata"),
            "include_location": ("includeLocation", "include_location"),
            "include_tags": ("includeTags", "include_tags"),
            "group_by_chapter": ("groupByChapter", "group_by_chapter"),
            "sort_by": ("sortBy", "sort_by"),
        }
        kwargs = {}
        for name, keys in aliases.items():
            for key in keys:
                if key in raw and raw[key] is not None:
                    kwargs[name] = raw[key]
                    break
        return cls(**kwargs)


def sort_annotations(annotations: List[Annotation], sort_by: str) -> List[Annotation]:
    """Return a stably sorted copy."""
    if sort_by == "date":
        return sorted(annotations, key=lambda a: a.created_at)
    if sort_by == "chapter":
        return sorted(annotations, key=lambda a: a.chapter or "")
    return sorted(annotations, key=lambda a: a.position or 0)


def group_by_chapter(annotations: List[Annotation]) -> Dict[str, List[Annotation]]:
    """Group in first-seen chapter order."""
    chapters: Dict[str, List[Annotation]] = {}
    for annotation in annotations:
        chapters.setdefault(annotation.chapter or UNCATEGORIZED, []).append(annotation)
    return chapters


class Renderer:
    """Base renderer; subclasses produce text for a list or a bundle."""
    name = ""
    extension = ".md"

    def render(self, annotations: List[Annotation],
               options: Optional[RenderOptions] = None) -> str:
        raise NotImplementedError

    def render_bundle(self, bundle: BookBundle,
                      options: Optional[RenderOptions] = None) -> str:
        raise NotImplementedError


class MarkdownRenderer(Renderer):
    name = "markdown"

    def render(self, annotations: List[Annotation],
               options: Optional[RenderOptions] = None) -> str:
        options = options or RenderOptions()
        lines = ["# Reading Notes", ""]

        if not annotations:
            lines.append("No notes yet.")
            return "\n".join(lines) + "\n"

        if options.include_metadata:
            first = annotations[0]
            lines.append("## Book Info")
            lines.append(f"- **Title**: {first.book_title}")
            if first.book_author:
                lines.append(f"- **Author**: {first.book_author}")
            lines.append(f"- **Notes**: {len(annotations)}")
            lines.append(f"- **Exported**: {datetime.now().strftime(TIME_FORMAT)}")
            lines.append("")

        lines.extend(self._body(annotations, options))
        return "\n".join(lines)

    def render_bundle(self, bundle: BookBundle,
                      options: Optional[RenderOptions] = None) -> str:
        options = options or RenderOptions()
        metadata = bundle.metadata
        lines = ["# Reading Notes", ""]

        if options.include_metadata:
            lines.append("## Book Info")
            lines.append(f"- **Title**: {metadata.title}")
            if metadata.author:
                lines.append(f"- **Author**: {metadata.author}")
            lines.append(f"- **Notes**: {metadata.total_notes}")
            if metadata.last_sync_date:
                lines.append(f"- **Last Sync**: {metadata.last_sync_date.strftime(TIME_FORMAT)}")
            lines.append(f"- **Exported**: {datetime.now().strftime(TIME_FORMAT)}")
            lines.append("")

        if not bundle.annotations:
            lines.append("No notes yet.")
            return "\n".join(lines) + "\n"

        lines.extend(self._body(bundle.annotations, options))
        return "\n".join(lines)

    def _body(self, annotations: List[Annotation], options: RenderOptions) -> List[str]:
        ordered = sort_annotations(annotations, options.sort_by)
        if not options.group_by_chapter:
            return self._blocks(ordered, options)

        lines = []
        for chapter, chapter_notes in group_by_chapter(ordered).items():
            lines.append(f"## {chapter}")
            lines.append("")
            lines.extend(self._blocks(chapter_notes, options))
        return lines

    def _blocks(self, annotations: List[Annotation], options: RenderOptions) -> List[str]:
        lines = []
        for number, note in enumerate(annotations, start=1):
            lines.append(f"### {KIND_HEADINGS[note.kind]} {number}")
            if note.kind is AnnotationKind.HIGHLIGHT:
                lines.append(f"> {note.content}")
            else:
                lines.append(note.content)
            lines.append("")

            if options.include_location:
                location_info = []
                if note.chapter:
                    location_info.append(f"Chapter: {note.chapter}")
                if note.location_label:
                    location_info.append(f"Location: {note.location_label}")
                if note.position is not None:
                    location_info.append(f"Position: {note.position}")
                if location_info:
                    lines.append(f"**{' | '.join(location_info)}**")
                    lines.append("")

            if options.include_tags and note.tags:
                lines.append(f"**Tags**: {', '.join(note.tags)}")
                lines.append("")

            lines.append(f"**Created**: {note.created_at.strftime(TIME_FORMAT)}")
            lines.append("")

            if note.color:
                lines.append(f"**Color**: {note.color}")
                lines.append("")

            lines.append("---")
            lines.append("")
        return lines


class SimpleRenderer(Renderer):
    """Content only: quoted highlights, plain notes and bookmarks."""
    name = "simple"

    def render(self, annotations: List[Annotation],
               options: Optional[RenderOptions] = None) -> str:
        options = options or RenderOptions()
        if not annotations:
            return "No notes yet.\n"
        lines = []
        for note in sort_annotations(annotations, options.sort_by):
            if note.kind is AnnotationKind.HIGHLIGHT:
                lines.append(f"> {note.content}")
            else:
                lines.append(note.content)
            lines.append("")
        return "\n".join(lines)

    def render_bundle(self, bundle: BookBundle,
                      options: Optional[RenderOptions] = None) -> str:
        options = options or RenderOptions()
        header = f"# {bundle.metadata.title}\n\n" if options.include_metadata else ""
        return header + self.render(bundle.annotations, options)


RENDERERS = {
    "markdown": MarkdownRenderer,
    "default": MarkdownRenderer,
    "simple": SimpleRenderer,
}


def get_renderer(name: str) -> Renderer:
    """Instantiate a renderer by registry name."""
    try:
        return RENDERERS[name]()
    except KeyError:
        raise ValueError(f"Unknown renderer: {name}") from None
