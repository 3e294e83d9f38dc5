"""Tests for the in-memory and JSON-file document stores."""

import json
import os
from datetime import datetime

import pytest

from import_fixers.store import (
    DocumentQuery,
    DocumentUpdateError,
    JsonDocumentStore,
    MemoryDocumentStore,
    StoreError,
)

from conftest import SITE_URL, UPLOADS, make_document


def write_corpus(path, **overrides):
    data = {
        "site_url": SITE_URL,
        "importers": ["admin"],
        "documents": [
            {
                "id": 1,
                "content": "<p>first</p>",
                "date": "2016-01-02T10:00:00",
                "slug": "first",
                "meta": {"_original_url": "http://old.example.com/first.html"},
            },
            {
                "id": 2,
                "content": "<p>second</p>",
                "date": "2016-01-03T10:00:00+02:00",
                "post_type": "page",
            },
        ],
        "assets": [{"id": 10, "file_path": "2016/05/photo.jpg", "alt": "Photo"}],
    }
    data.update(overrides)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestDocumentQuery:
    def test_post_type(self):
        post = make_document(1)
        page = make_document(2, post_type="page")
        assert DocumentQuery().matches(post)
        assert not DocumentQuery().matches(page)
        assert DocumentQuery(post_type="any").matches(page)

    def test_date_bounds_are_inclusive(self):
        document = make_document(1, date=datetime(2016, 3, 1))
        assert DocumentQuery(after=datetime(2016, 3, 1), before=datetime(2016, 3, 1)).matches(document)
        assert not DocumentQuery(after=datetime(2016, 3, 2)).matches(document)
        assert not DocumentQuery(before=datetime(2016, 2, 29)).matches(document)

    def test_search_is_case_insensitive(self):
        document = make_document(1, "<A HREF='http://Old.Example.com/'>x</A>")
        assert DocumentQuery(search="old.example.com").matches(document)
        assert not DocumentQuery(search="<img").matches(document)

    def test_after_id_cursor(self):
        assert not DocumentQuery(after_id=5).matches(make_document(5))
        assert DocumentQuery(after_id=5).matches(make_document(6))


class TestMemoryDocumentStore:
    def test_list_documents_is_ordered_and_detached(self):
        store = MemoryDocumentStore(SITE_URL, [make_document(i, f"doc {i}") for i in (3, 1, 2)])

        page = store.list_documents(DocumentQuery(), 0, 2)

        assert [doc.id for doc in page] == [1, 2]
        page[0].meta["x"] = "y"
        assert store.documents[1].meta == {}

    def test_find_one_by_metadata_prefers_lowest_id(self):
        store = MemoryDocumentStore(
            SITE_URL,
            [
                make_document(9, meta={"_original_url": "http://a/"}),
                make_document(4, meta={"_original_url": "http://a/"}),
            ],
        )
        assert store.find_one_by_metadata("_original_url", "http://a/") == 4
        assert store.find_one_by_metadata("_original_url", "http://b/") is None

    def test_update_document(self, store):
        store.documents[1] = make_document(1, "old")

        store.update_document(1, {"content": "new"})

        assert store.documents[1].content == "new"
        assert store.documents[1].modified > store.documents[1].date

    def test_update_rejects_unknown_documents_and_fields(self, store):
        store.documents[1] = make_document(1, "old")
        with pytest.raises(DocumentUpdateError):
            store.update_document(2, {"content": "new"})
        with pytest.raises(DocumentUpdateError):
            store.update_document(1, {"id": 5})
        assert store.documents[1].content == "old"

    def test_assets(self, store):
        store.documents[1] = make_document(1)
        asset = store.create_asset({"alt": "Photo"}, "2016/05/photo.jpg", 1)

        assert asset.id == 2
        assert asset.url == f"{UPLOADS}/2016/05/photo.jpg"
        assert asset.permalink == f"{SITE_URL}/?attachment_id=2"
        assert store.find_asset_by_path_pattern("photo.jpg") == asset
        assert store.find_asset_by_path_pattern("hoto.jpg") is None
        assert store.find_asset_by_url(asset.url) == asset

        moved = store.update_asset(asset.id, {"file_path": "2016/05/picture.jpg"})
        assert moved.url == f"{UPLOADS}/2016/05/picture.jpg"
        with pytest.raises(StoreError):
            store.update_asset(asset.id, {"id": 3})
        with pytest.raises(StoreError):
            store.create_asset({}, "", None)

    def test_can_import(self):
        assert MemoryDocumentStore(SITE_URL).can_import("anyone")
        assert not MemoryDocumentStore(SITE_URL).can_import("")
        restricted = MemoryDocumentStore(SITE_URL, importers=["admin"])
        assert restricted.can_import("admin")
        assert not restricted.can_import("editor")


class TestJsonDocumentStore:
    def test_load(self, tmp_path):
        store = JsonDocumentStore.load(write_corpus(tmp_path / "corpus.json"))

        assert sorted(store.documents) == [1, 2]
        assert store.documents[1].modified == store.documents[1].date
        assert store.documents[2].date == datetime(2016, 1, 3, 10, 0)
        assert store.documents[2].post_type == "page"
        assert store.get_canonical_url(1) == f"{SITE_URL}/first/"
        assert store.get_canonical_url(2) == f"{SITE_URL}/?p=2"
        assert store.assets[10].url == f"{UPLOADS}/2016/05/photo.jpg"
        assert store.can_import("admin")

    def test_updates_are_written_back(self, tmp_path):
        path = write_corpus(tmp_path / "corpus.json")
        store = JsonDocumentStore.load(path)

        store.update_document(1, {"content": "<p>fixed</p>"})
        store.create_asset({"title": "café"}, "2016/05/cafe.jpg", 1)

        reloaded = JsonDocumentStore.load(path)
        assert reloaded.documents[1].content == "<p>fixed</p>"
        assert reloaded.assets[11].file_path == "2016/05/cafe.jpg"
        assert reloaded.assets[11].metadata == {"title": "café"}
        assert reloaded.importers == {"admin"}
        assert [p.name for p in tmp_path.iterdir()] == ["corpus.json"]

    def test_failed_write_leaves_memory_and_file_unchanged(self, tmp_path, monkeypatch):
        path = write_corpus(tmp_path / "corpus.json")
        store = JsonDocumentStore.load(path)

        def refuse(src, dst):
            raise OSError("disk full")

        with monkeypatch.context() as patched:
            patched.setattr(os, "replace", refuse)
            with pytest.raises(StoreError):
                store.update_document(1, {"content": "<p>lost</p>"})
            with pytest.raises(StoreError):
                store.create_asset({}, "2016/05/new.jpg", 1)
            with pytest.raises(StoreError):
                store.update_asset(10, {"file_path": "2016/05/moved.jpg"})

        assert store.documents[1].content == "<p>first</p>"
        assert sorted(store.assets) == [10]
        assert store.assets[10].file_path == "2016/05/photo.jpg"

        store.update_document(2, {"content": "<p>saved</p>"})
        reloaded = JsonDocumentStore.load(path)
        assert reloaded.documents[1].content == "<p>first</p>"
        assert reloaded.documents[2].content == "<p>saved</p>"
        assert [p.name for p in tmp_path.iterdir()] == ["corpus.json"]

    @pytest.mark.parametrize(
        "payload",
        [
            "{not json",
            "[]",
            json.dumps({"documents": []}),
            json.dumps({"site_url": SITE_URL, "documents": [{"content": "no id"}]}),
            json.dumps({"site_url": SITE_URL, "documents": [{"id": 1, "date": "yesterday"}]}),
        ],
    )
    def test_bad_corpus_raises_store_error(self, tmp_path, payload):
        path = tmp_path / "corpus.json"
        path.write_text(payload, encoding="utf-8")
        with pytest.raises(StoreError):
            JsonDocumentStore.load(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(StoreError):
            JsonDocumentStore.load(tmp_path / "missing.json")
