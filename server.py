from collections import deque
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from note_renderer import RenderOptions
from notes_store import AnnotationStore, StoreConfig, StoreError, StoreEvent, UnsupportedFormatError
from ocr_service import OCRError, build_ocr_bundle, get_ocr_service

app = FastAPI(title="readnotes")

# Where are the persisted bundles located?
config = StoreConfig.from_env()
STORAGE_DIR = config.storage_dir

store = AnnotationStore(config)

# Most recent notifications, newest last
recent_events: deque = deque(maxlen=100)
recent_errors: deque = deque(maxlen=100)


def _record_event(event: StoreEvent):
    recent_events.append({"kind": event.kind, "payload": event.payload, "timestamp": event.timestamp})


def _record_error(report: StoreError):
    recent_errors.append({"message": report.message, "error": str(report.error),
                          "timestamp": report.timestamp})


def attach_store(new_store: AnnotationStore) -> AnnotationStore:
    """Swap in a store, wire its channels into the event log and load its files."""
    global store
    store = new_store
    store.subscribe(_record_event)
    store.subscribe_errors(_record_error)
    store.load_all()
    return store


attach_store(store)


def _book_summary(bundle) -> Dict[str, Any]:
    return bundle.metadata.to_dict()


def _require_annotation(annotation_id: str):
    annotation = store.get_annotation_by_id(annotation_id)
    if annotation is None:
        raise HTTPException(status_code=404, detail="Annotation not found")
    return annotation


class ImportRequest(BaseModel):
    content: str
    format: Optional[str] = None


class AnnotationUpdate(BaseModel):
    content: Optional[str] = None
    kind: Optional[str] = None
    tags: Optional[List[str]] = None
    color: Optional[str] = None
    chapter: Optional[str] = None
    location_label: Optional[str] = None
    position: Optional[Union[int, float]] = None


class ExportRequest(BaseModel):
    format: str = "markdown"
    options: Optional[Dict[str, Any]] = None


# ========== Import ==========

@app.post("/api/import")
async def import_notes(request: ImportRequest):
    """Import exported notes sent as text."""
    try:
        bundle = store.import_from(request.content, request.format)
    except UnsupportedFormatError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return bundle.to_dict()


@app.post("/api/import/upload")
async def import_upload(file: UploadFile = File(...), format: Optional[str] = Form(None)):
    """Import an uploaded export file."""
    blob = await file.read()
    try:
        bundle = store.import_from(blob, format)
    except UnsupportedFormatError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return bundle.to_dict()


@app.post("/api/ocr")
async def import_ocr(file: UploadFile = File(...), title: str = Form(...),
                     author: Optional[str] = Form(None), chapter: Optional[str] = Form(None),
                     min_confidence: float = Form(0)):
    """Recognize a page photo and store its paragraphs as highlights."""
    image = await file.read()
    try:
        result = await get_ocr_service().recognize_image(image)
    except OCRError as e:
        raise HTTPException(status_code=502, detail=str(e))
    bundle = build_ocr_bundle(result, title, author=author, chapter=chapter,
                              min_confidence=min_confidence)
    return store.add_bundle(bundle).to_dict()


# ========== Books ==========

@app.get("/api/books")
async def list_books():
    return {"books": [_book_summary(b) for b in store.list_books()]}


@app.get("/api/books/{title}")
async def get_book(title: str):
    bundle = store.get_book(title)
    if bundle is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return bundle.to_dict()


@app.delete("/api/books/{title}")
async def delete_book(title: str):
    if not store.delete_book(title):
        raise HTTPException(status_code=404, detail="Book not found")
    return {"success": True}


@app.get("/api/books/{title}/annotations")
async def get_book_annotations(title: str):
    if store.get_book(title) is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return {"annotations": [a.to_dict() for a in store.get_annotations_for_book(title)]}


@app.post("/api/books/{title}/export")
async def export_book(title: str, request: Optional[ExportRequest] = None):
    """Write the rendered book to the export directory."""
    request = request or ExportRequest()
    try:
        path = store.export_book(title, request.format, RenderOptions.from_dict(request.options))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if path is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return {"path": path}


@app.get("/api/books/{title}/render", response_class=PlainTextResponse)
async def render_book(title: str, format: str = "markdown", group_by_chapter: bool = False,
                      sort_by: str = "position", include_metadata: bool = True):
    """Render a book as text without writing a file."""
    try:
        options = RenderOptions(group_by_chapter=group_by_chapter, sort_by=sort_by,
                                include_metadata=include_metadata)
        text = store.render_book(title, format, options)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if text is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return text


# ========== Annotations ==========

@app.get("/api/annotations")
async def list_annotations():
    return {"annotations": [a.to_dict() for a in store.list_all_annotations()]}


@app.get("/api/annotations/{annotation_id}")
async def get_annotation(annotation_id: str):
    return _require_annotation(annotation_id).to_dict()


@app.patch("/api/annotations/{annotation_id}")
async def update_annotation(annotation_id: str, update: AnnotationUpdate):
    _require_annotation(annotation_id)
    if not store.update_annotation(annotation_id, update.model_dump(exclude_unset=True)):
        raise HTTPException(status_code=400, detail="Invalid annotation update")
    return store.get_annotation_by_id(annotation_id).to_dict()


@app.delete("/api/annotations/{annotation_id}")
async def delete_annotation(annotation_id: str):
    if not store.delete_annotation(annotation_id):
        raise HTTPException(status_code=404, detail="Annotation not found")
    return {"success": True}


# ========== Queries ==========

@app.get("/api/search")
async def search(q: str = ""):
    results = store.search(q) if q.strip() else []
    return {"query": q, "results": [a.to_dict() for a in results]}


@app.get("/api/stats")
async def stats():
    return store.statistics()


@app.get("/api/parsers")
async def parsers():
    return {"parsers": store.parser_names(), "renderers": store.renderer_names()}


@app.get("/api/events")
async def events():
    return {"events": list(recent_events), "errors": list(recent_errors)}
