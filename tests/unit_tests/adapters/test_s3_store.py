import boto3
import pytest

from files_index.adapters.storage import S3ObjectStore, StoreFactory
from files_index.config.settings import Settings
from files_index.errors import StoreAdapterError
from files_index.index.filters import build_query_filter
from files_index.index.models import IndexConfig
from files_index.index.query import read_index
from files_index.index.rebuild import rebuild_index
from tests.consts import TEST_BUCKET_NAME
from tests.fixtures.store_fixtures import file_metadata, seed_files


@pytest.fixture
def s3_store(mocked_aws) -> S3ObjectStore:
    return S3ObjectStore(TEST_BUCKET_NAME, s3_client=boto3.client("s3"))


def test__put_get_with_metadata(s3_store):
    s3_store.put("docs/a.txt", b"hello", file_metadata(tags=["x"], FileName="a.txt"))

    stored = s3_store.get_with_metadata("docs/a.txt")

    assert stored.value == b"hello"
    assert stored.metadata["Tags"] == ["x"]
    assert stored.metadata["FileName"] == "a.txt"


def test__missing_key(s3_store):
    assert s3_store.get("nope") is None
    assert not s3_store.exists("nope")
    s3_store.delete("nope")


def test__delete(s3_store):
    s3_store.put("a.txt", "x")
    s3_store.delete("a.txt")
    assert s3_store.get("a.txt") is None


def test__list_paginates_with_metadata(s3_store):
    for name in ["a", "b", "c", "d", "e"]:
        s3_store.put(f"dir/{name}", name, {"TimeStamp": 1})
    s3_store.put("outside", "x")

    seen = []
    cursor = None
    while True:
        page = s3_store.list(prefix="dir/", limit=2, cursor=cursor)
        seen.extend((entry.name, entry.metadata) for entry in page.keys)
        cursor = page.cursor
        if not cursor:
            break

    assert seen == [(f"dir/{name}", {"TimeStamp": 1}) for name in ["a", "b", "c", "d", "e"]]


def test__missing_bucket_raises_store_error(mocked_aws):
    store = S3ObjectStore("bucket-that-does-not-exist", s3_client=boto3.client("s3"))
    with pytest.raises(StoreAdapterError):
        store.put("a.txt", "x")


def test__rebuild_and_query_over_s3(s3_store, sample_files):
    seed_files(s3_store, sample_files)
    config = IndexConfig(scan_page_size=2, page_pause_seconds=0, index_chunk_size=2)

    rebuild_index(s3_store, config)
    result = read_index(s3_store, build_query_filter(directory="docs/img"))

    assert [record.id for record in result.files] == ["docs/img/b.png", "docs/img/c.jpg"]
    assert result.directories == ["docs/img/deep"]


def test__store_factory__aws_mock_mode(mocked_aws):
    settings = Settings(deployment_mode="aws-mock", s3_bucket_name=TEST_BUCKET_NAME)
    store = StoreFactory.get_store(settings)
    assert isinstance(store, S3ObjectStore)
    assert store.describe() == f"s3://{TEST_BUCKET_NAME}"
