import json

import pytest

from files_index.adapters.storage import LocalObjectStore, StoreFactory
from files_index.config.settings import Settings
from files_index.errors import StoreAdapterError


def test__put_get_with_metadata(local_store):
    local_store.put("docs/a b.txt", b"hello", {"TimeStamp": 1, "Tags": ["x"]})

    stored = local_store.get_with_metadata("docs/a b.txt")

    assert stored.value == b"hello"
    assert stored.metadata == {"TimeStamp": 1, "Tags": ["x"]}
    assert local_store.get("docs/a b.txt") == b"hello"
    assert local_store.exists("docs/a b.txt")


def test__missing_key(local_store):
    assert local_store.get("nope") is None
    assert not local_store.exists("nope")
    # Deleting a missing key is not an error
    local_store.delete("nope")


def test__overwrite_and_delete(local_store):
    local_store.put("a.txt", "one")
    local_store.put("a.txt", "two")
    assert local_store.get("a.txt") == b"two"

    local_store.delete("a.txt")
    assert local_store.get("a.txt") is None


def test__list_paginates_by_cursor(local_store):
    for name in ["b", "a", "c/d", "c/e", "e"]:
        local_store.put(name, name, {"TimeStamp": 1})

    seen = []
    cursor = None
    while True:
        page = local_store.list(limit=2, cursor=cursor)
        assert len(page.keys) <= 2
        seen.extend(entry.name for entry in page.keys)
        cursor = page.cursor
        if not cursor:
            break

    assert seen == ["a", "b", "c/d", "c/e", "e"]


def test__list_prefix_and_metadata(local_store):
    local_store.put("c/d", "x", {"TimeStamp": 5})
    local_store.put("cd", "y")

    page = local_store.list(prefix="c/")

    assert [(entry.name, entry.metadata) for entry in page.keys] == [("c/d", {"TimeStamp": 5})]
    assert page.cursor is None


def test__store_factory__local_mode(tmp_path):
    settings = Settings(deployment_mode="local-dev", storage_dir=str(tmp_path))
    assert isinstance(StoreFactory.get_store(settings), LocalObjectStore)


@pytest.mark.parametrize(
    "document",
    [
        {"key": "b.txt", "metadata": {"TimeStamp": 1}},
        {"key": "b.txt", "value": "not base64!", "metadata": None},
        {"key": "b.txt", "value": 5},
        ["not", "a", "document"],
    ],
)
def test__malformed_document_is_a_store_error(local_store, document):
    with open(local_store._path("b.txt"), "w", encoding="utf-8") as f:
        json.dump(document, f)

    with pytest.raises(StoreAdapterError):
        local_store.get_with_metadata("b.txt")
    with pytest.raises(StoreAdapterError):
        local_store.list()
