"""Tests for the notes_store module."""

import json
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from notes_model import (
    UNKNOWN_TITLE,
    Annotation,
    AnnotationKind,
    BookBundle,
    BookMetadata,
)
from note_parsers import DuokanParser
from note_renderer import RenderOptions, SimpleRenderer
from notes_store import (
    AnnotationStore,
    NotesError,
    StoreConfig,
    UnsupportedFormatError,
    sanitize_filename,
)


SAMPLE_JSON = '{"bookTitle":"T","author":"A","notes":[{"content":"c1","type":"highlight"}]}'

SAMPLE_TEXT = "《T2》\n作者：A2\n\n章节：Ch1\n划线：line one\n想法：line two"


@pytest.fixture
def config(temp_data_dir):
    return StoreConfig(storage_dir=os.path.join(temp_data_dir, "notes"))


@pytest.fixture
def store(config):
    """Create a store backed by a temp directory."""
    return AnnotationStore(config)


@pytest.fixture
def events(store):
    received = {"events": [], "errors": []}
    store.subscribe(received["events"].append)
    store.subscribe_errors(received["errors"].append)
    return received


def manual_bundle(title, *notes):
    bundle = BookBundle(metadata=BookMetadata(title=title), annotations=list(notes))
    bundle.refresh_count()
    return bundle


class TestStoreConfig:
    def test_export_dir_defaults_under_storage(self):
        config = StoreConfig(storage_dir="/tmp/somewhere")
        assert config.export_dir == os.path.join("/tmp/somewhere", "exports")
        assert config.auto_save is True

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("READNOTES_STORAGE_DIR", "/data/n")
        monkeypatch.setenv("READNOTES_EXPORT_DIR", "/data/out")
        monkeypatch.setenv("READNOTES_AUTO_SAVE", "false")
        config = StoreConfig.from_env()
        assert config.storage_dir == "/data/n"
        assert config.export_dir == "/data/out"
        assert config.auto_save is False


class TestSanitizeFilename:
    def test_replaces_unsafe_characters(self):
        assert sanitize_filename("My Book: Part 1") == "My_Book__Part_1"
        assert sanitize_filename('a<b>c"d/e\\f|g?h*') == "a_b_c_d_e_f_g_h_"

    def test_collapses_whitespace(self):
        assert sanitize_filename("a \t  b") == "a_b"


class TestImport:
    """Tests for importing exports into the store."""

    def test_import_json(self, store, events):
        bundle = store.import_from(SAMPLE_JSON)
        assert bundle.title == "T"
        assert bundle.metadata.total_notes == 1
        assert store.get_book("T") is bundle
        assert len(store.list_all_annotations()) == 1
        assert events["events"][0].kind == "imported"
        assert events["events"][0].payload == {"title": "T", "count": 1}

    def test_import_titled_text(self, store):
        bundle = store.import_from(SAMPLE_TEXT)
        assert bundle.title == "T2"
        notes = store.get_annotations_for_book("T2")
        assert [n.kind for n in notes] == [AnnotationKind.HIGHLIGHT, AnnotationKind.NOTE]
        assert all(n.chapter == "Ch1" for n in notes)

    def test_import_bytes(self, store):
        bundle = store.import_from(SAMPLE_JSON.encode("utf-8"))
        assert bundle.title == "T"

    def test_format_hint_skips_detection(self, store):
        bundle = store.import_from("书名：Hinted\n高亮：一段文字", format_hint="duokan")
        assert bundle.title == "Hinted"
        assert len(bundle.annotations) == 1

    def test_unknown_hint_raises(self, store, events):
        with pytest.raises(UnsupportedFormatError):
            store.import_from(SAMPLE_JSON, format_hint="kindle")
        assert len(events["errors"]) == 1
        assert store.list_books() == []

    def test_undetected_input_raises(self, store, events):
        with pytest.raises(NotesError):
            store.import_from("Just some words on a page.")
        assert isinstance(events["errors"][0].error, UnsupportedFormatError)
        assert events["events"] == []

    def test_malformed_json_yields_unknown_book(self, store):
        bundle = store.import_from('{"bookTitle": "T", "notes": [')
        assert bundle.title == UNKNOWN_TITLE
        assert bundle.annotations == []

    def test_deeply_nested_json_yields_unknown_book(self, store):
        bundle = store.import_from("[" * 100000)
        assert bundle.title == UNKNOWN_TITLE
        assert bundle.annotations == []
        assert store.list_books()[0].title == UNKNOWN_TITLE

    def test_title_collisions_are_suffixed(self, store):
        titles = [store.import_from(SAMPLE_JSON).title for _ in range(3)]
        assert titles == ["T", "T_1", "T_2"]
        for title in titles:
            for note in store.get_annotations_for_book(title):
                assert note.book_title == title

    def test_ids_are_unique_across_imports(self, store):
        for _ in range(3):
            store.import_from(SAMPLE_JSON)
        ids = [a.id for a in store.list_all_annotations()]
        assert len(ids) == len(set(ids)) == 3

    def test_duplicate_ids_within_bundle(self, store):
        bundle = manual_bundle(
            "Dupes",
            Annotation(id="dup", book_title="Dupes", content="first"),
            Annotation(id="dup", book_title="Dupes", content="second"),
        )
        stored = store.add_bundle(bundle)
        assert [a.id for a in stored.annotations] == ["dup", "dup_1"]
        assert store.get_annotation_by_id("dup").content == "first"
        assert store.get_annotation_by_id("dup_1").content == "second"

    def test_import_file(self, store, temp_data_dir):
        path = os.path.join(temp_data_dir, "export.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write(SAMPLE_JSON)
        assert store.import_file(path).title == "T"

    def test_import_missing_file(self, store, events):
        with pytest.raises(OSError):
            store.import_file("/nonexistent/export.json")
        assert len(events["errors"]) == 1

    def test_listener_failure_does_not_break_import(self, store):
        def broken(event):
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        assert store.import_from(SAMPLE_JSON).title == "T"

    def test_unsubscribe(self, store):
        received = []
        unsubscribe = store.subscribe(received.append)
        unsubscribe()
        store.import_from(SAMPLE_JSON)
        assert received == []


class TestMutations:
    """Tests for update and delete operations."""

    def test_update_annotation(self, store, events):
        store.import_from(SAMPLE_JSON)
        note = store.list_all_annotations()[0]
        original_id = note.id

        assert store.update_annotation(original_id, {
            "content": "edited", "kind": "note", "tags": ["t1"],
            "locationLabel": "p. 3", "id": "hijacked", "book_title": "Other",
        })

        updated = store.get_annotation_by_id(original_id)
        assert updated.content == "edited"
        assert updated.kind == AnnotationKind.NOTE
        assert updated.tags == ["t1"]
        assert updated.location_label == "p. 3"
        assert updated.book_title == "T"
        assert updated.updated_at is not None
        assert store.get_annotation_by_id("hijacked") is None
        assert store.get_annotations_for_book("T")[0].content == "edited"
        assert events["events"][-1].kind == "updated"

    def test_update_unknown_annotation(self, store):
        assert store.update_annotation("missing", {"content": "x"}) is False

    def test_update_with_invalid_kind(self, store):
        store.import_from(SAMPLE_JSON)
        note = store.list_all_annotations()[0]
        assert store.update_annotation(note.id, {"kind": "scribble", "content": "x"}) is False
        assert note.content == "c1"

    def test_update_tags_from_string(self, store):
        store.import_from(SAMPLE_JSON)
        note = store.list_all_annotations()[0]
        assert store.update_annotation(note.id, {"tags": "favourite"})
        assert note.tags == ["favourite"]

    def test_update_position(self, store):
        store.import_from(SAMPLE_JSON)
        note = store.list_all_annotations()[0]
        assert store.update_annotation(note.id, {"position": "12"})
        assert note.position == 12
        assert store.update_annotation(note.id, {"position": None})
        assert note.position is None

    def test_update_with_invalid_position(self, store):
        store.import_from(SAMPLE_JSON)
        note = store.list_all_annotations()[0]
        assert store.update_annotation(note.id, {"position": "abc", "content": "x"}) is False
        assert note.position == 0
        assert note.content == "c1"
        assert "c1" in store.render_book("T", options={"sort_by": "position"})

    def test_delete_annotation(self, store, events):
        store.import_from(SAMPLE_TEXT)
        note = store.get_annotations_for_book("T2")[0]
        assert store.delete_annotation(note.id)
        assert store.get_annotation_by_id(note.id) is None
        book = store.get_book("T2")
        assert len(book.annotations) == 1
        assert book.metadata.total_notes == 1
        assert events["events"][-1].kind == "deleted"
        assert store.delete_annotation(note.id) is False

    def test_delete_book_cascades(self, store, config, events):
        bundle = store.import_from(SAMPLE_TEXT)
        ids = [a.id for a in bundle.annotations]
        path = os.path.join(config.storage_dir, "T2.json")
        assert os.path.exists(path)

        assert store.delete_book("T2")
        assert store.get_book("T2") is None
        assert all(store.get_annotation_by_id(i) is None for i in ids)
        assert not os.path.exists(path)
        assert events["events"][-1].kind == "book_deleted"

    def test_delete_unknown_book(self, store):
        store.import_from(SAMPLE_JSON)
        before = store.statistics()
        assert store.delete_book("Nope") is False
        assert store.statistics() == before


class TestQueries:
    """Tests for search and statistics."""

    def test_search_is_case_insensitive(self, store):
        store.import_from(SAMPLE_JSON)
        store.import_from(SAMPLE_TEXT)
        assert [a.content for a in store.search("C1")] == ["c1"]
        assert len(store.search("ch1")) == 2
        assert len(store.search("t2")) == 2

    def test_search_content(self, store):
        store.add_bundle(manual_bundle(
            "Web", Annotation(id="js", book_title="Web", content="JavaScript tips")))
        assert [a.id for a in store.search("javascript")] == ["js"]
        assert store.search("Python") == []

    def test_search_tags(self, store):
        store.add_bundle(manual_bundle(
            "Tagged", Annotation(id="t", book_title="Tagged", content="plain", tags=["Philosophy"])))
        assert [a.id for a in store.search("philo")] == ["t"]
        assert store.search("absent") == []

    def test_statistics(self, store):
        store.import_from(SAMPLE_JSON)
        store.import_from(SAMPLE_TEXT)
        stats = store.statistics()
        assert stats["total_books"] == 2
        assert stats["total_annotations"] == 3
        assert stats["by_source"] == {"duokan": 1, "wechat": 2}
        assert stats["by_kind"] == {"highlight": 2, "note": 1}

    def test_totals_match_after_every_mutation(self, store):
        store.import_from(SAMPLE_TEXT)
        note = store.list_all_annotations()[0]
        store.update_annotation(note.id, {"content": "x"})
        store.delete_annotation(note.id)
        for book in store.list_books():
            assert book.metadata.total_notes == len(book.annotations)


class TestExport:
    """Tests for rendering and export."""

    def test_export_book(self, store, config, events):
        store.import_from(SAMPLE_TEXT)
        path = store.export_book("T2")
        assert os.path.dirname(path) == config.export_dir
        assert os.path.basename(path).startswith("T2_")
        assert path.endswith(".md")
        with open(path, encoding="utf-8") as f:
            text = f.read()
        assert "# Reading Notes" in text
        assert "> line one" in text
        assert events["events"][-1].kind == "exported"
        assert events["events"][-1].payload["path"] == path

    def test_export_unknown_book(self, store):
        assert store.export_book("Nope") is None

    def test_export_unknown_renderer(self, store, events):
        store.import_from(SAMPLE_JSON)
        with pytest.raises(ValueError):
            store.export_book("T", renderer_name="html")
        assert len(events["errors"]) == 1

    def test_export_with_options_dict(self, store):
        store.import_from(SAMPLE_TEXT)
        path = store.export_book("T2", options={"groupByChapter": True})
        with open(path, encoding="utf-8") as f:
            assert "## Ch1" in f.read()

    def test_render_book(self, store):
        store.import_from(SAMPLE_TEXT)
        text = store.render_book("T2", "simple", RenderOptions(include_metadata=False))
        assert text.startswith("> line one")
        assert store.render_book("Nope") is None

    def test_export_all(self, store):
        store.import_from(SAMPLE_JSON)
        store.import_from(SAMPLE_TEXT)
        paths = store.export_all()
        assert len(paths) == 2
        assert all(os.path.exists(p) for p in paths)

    def test_custom_renderer(self, store):
        store.add_renderer("plain", SimpleRenderer())
        assert "plain" in store.renderer_names()
        store.import_from(SAMPLE_JSON)
        assert store.render_book("T", "plain").startswith("# T")


class TestPersistence:
    """Tests for persist and load_all."""

    def test_round_trip(self, config):
        store = AnnotationStore(config)
        original = store.import_from(SAMPLE_TEXT)

        reloaded = AnnotationStore(config)
        assert reloaded.load_all() == 1
        book = reloaded.get_book("T2")
        assert book is not None
        assert [a.content for a in book.annotations] == [a.content for a in original.annotations]
        assert [a.id for a in book.annotations] == [a.id for a in original.annotations]
        assert book.annotations[0].chapter == "Ch1"
        assert book.metadata.author == "A2"

    def test_persisted_document_shape(self, store, config):
        store.import_from(SAMPLE_JSON)
        with open(os.path.join(config.storage_dir, "T.json"), encoding="utf-8") as f:
            data = json.load(f)
        assert data["metadata"]["title"] == "T"
        assert data["metadata"]["totalNotes"] == 1
        assert data["annotations"][0]["bookTitle"] == "T"
        assert data["annotations"][0]["kind"] == "highlight"

    def test_isbn_and_cover_are_persisted(self, config):
        store = AnnotationStore(config)
        store.import_from('{"bookTitle": "C", "isbn": "123", "cover": "c.jpg", "notes": [{"content": "x"}]}')
        with open(os.path.join(config.storage_dir, "C.json"), encoding="utf-8") as f:
            metadata = json.load(f)["metadata"]
        assert metadata["isbn"] == "123"
        assert metadata["coverImage"] == "c.jpg"

        reloaded = AnnotationStore(config)
        reloaded.load_all()
        assert reloaded.get_book("C").metadata.cover_image == "c.jpg"

    def test_updates_are_saved(self, config):
        store = AnnotationStore(config)
        store.import_from(SAMPLE_JSON)
        note = store.list_all_annotations()[0]
        store.update_annotation(note.id, {"content": "saved edit"})

        reloaded = AnnotationStore(config)
        reloaded.load_all()
        assert reloaded.get_annotation_by_id(note.id).content == "saved edit"

    def test_auto_save_off(self, temp_data_dir):
        config = StoreConfig(storage_dir=os.path.join(temp_data_dir, "manual"), auto_save=False)
        store = AnnotationStore(config)
        bundle = store.import_from(SAMPLE_JSON)
        assert not os.path.exists(config.storage_dir)

        path = store.persist(bundle)
        assert os.path.exists(path)
        assert not os.path.exists(path + ".tmp")

    def test_load_all_skips_bad_files(self, store, config, events):
        os.makedirs(config.storage_dir, exist_ok=True)
        with open(os.path.join(config.storage_dir, "broken.json"), "w", encoding="utf-8") as f:
            f.write("{not json")
        with open(os.path.join(config.storage_dir, "list.json"), "w", encoding="utf-8") as f:
            f.write("[1, 2, 3]")
        with open(os.path.join(config.storage_dir, "good.json"), "w", encoding="utf-8") as f:
            json.dump(manual_bundle("Good", Annotation(id="g", book_title="Good", content="ok")).to_dict(), f)

        assert store.load_all() == 1
        assert store.get_annotation_by_id("g").content == "ok"
        assert len(events["errors"]) == 2

    def test_load_all_missing_dir(self, store):
        assert store.load_all() == 0

    def test_load_all_suffixes_existing_titles(self, config):
        store = AnnotationStore(config)
        store.import_from(SAMPLE_JSON)
        store.load_all()
        assert sorted(b.title for b in store.list_books()) == ["T", "T_1"]


class TestRegistries:
    def test_default_names(self, store):
        assert store.parser_names() == ["duokan", "wechat"]
        assert set(store.renderer_names()) == {"markdown", "default", "simple"}

    def test_add_parser(self, store):
        store.add_parser("mine", DuokanParser())
        assert store.parser_names()[-1] == "mine"
        assert store.import_from(SAMPLE_JSON, format_hint="mine").title == "T"
