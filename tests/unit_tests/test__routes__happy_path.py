from fastapi import status
from fastapi.testclient import TestClient

from files_index.main import create_app

# Constants for testing
TEST_FILE_PATH = "docs/test.txt"
TEST_FILE_CONTENT = b"Hello, world!"
TEST_FILE_CONTENT_TYPE = "text/plain"
TEST_IMAGE_PATH = "img/cat.png"
TEST_IMAGE_CONTENT = b"\x89PNG\r\n\x1a\nfake"
TEST_IMAGE_CONTENT_TYPE = "image/png"


def upload(client: TestClient, path: str, content: bytes = TEST_FILE_CONTENT,
           content_type: str = TEST_FILE_CONTENT_TYPE, **params):
    return client.put(
        f"/v1/files/{path}",
        params=params,
        files={"file_content": (path.split("/")[-1], content, content_type)},
    )


def run_action(client: TestClient, action: str):
    """Trigger a maintenance action and wait for the background task to finish."""
    response = client.get("/v1/files", params={"action": action})
    assert response.status_code == status.HTTP_202_ACCEPTED
    body = response.json()
    assert body["action"] == action
    handle = client.app.state.maintenance.get(body["taskId"])
    return handle.future.result(timeout=30)


def test__upload_file__new_then_existing(client: TestClient):
    response = upload(client, TEST_FILE_PATH)
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["message"] == f"New file uploaded at path: /{TEST_FILE_PATH}"

    response = upload(client, TEST_FILE_PATH, b"new content")
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["message"] == f"Existing file updated at path: /{TEST_FILE_PATH}"


def test__upload_file__reserved_path_is_rejected(client: TestClient):
    response = upload(client, "manage@index@meta")
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test__get_file(client: TestClient):
    upload(client, TEST_FILE_PATH)

    response = client.get(f"/v1/files/{TEST_FILE_PATH}")

    assert response.status_code == status.HTTP_200_OK
    assert response.content == TEST_FILE_CONTENT
    assert response.headers["Content-Type"].startswith(TEST_FILE_CONTENT_TYPE)


def test__delete_file(client: TestClient):
    upload(client, TEST_FILE_PATH)

    response = client.delete(f"/v1/files/{TEST_FILE_PATH}")
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["message"] == f"File '{TEST_FILE_PATH}' deleted successfully"

    assert client.get(f"/v1/files/{TEST_FILE_PATH}").status_code == status.HTTP_404_NOT_FOUND
    assert client.delete(f"/v1/files/{TEST_FILE_PATH}").status_code == status.HTTP_404_NOT_FOUND


def test__list_files__falls_back_to_scan_without_index(client: TestClient):
    upload(client, TEST_FILE_PATH)
    upload(client, "docs/sub/inner.txt")

    response = client.get("/v1/files", params={"dir": "docs"})

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["isIndexedResponse"] is False
    assert [item["name"] for item in body["files"]] == [TEST_FILE_PATH]
    assert body["directories"] == ["docs/sub"]
    assert body["totalCount"] == 1
    assert body["returnedCount"] == 1


def test__list_files__rebuild_then_merge(client: TestClient):
    upload(client, TEST_FILE_PATH, tags="work,q1")
    result = run_action(client, "rebuild")
    assert result.status == "completed"

    body = client.get("/v1/files", params={"dir": "docs"}).json()
    assert body["isIndexedResponse"] is True
    assert [item["name"] for item in body["files"]] == [TEST_FILE_PATH]
    assert body["files"][0]["metadata"]["Tags"] == ["work", "q1"]

    # New writes are only visible after a merge
    upload(client, "docs/later.txt")
    body = client.get("/v1/files", params={"dir": "docs"}).json()
    assert body["totalCount"] == 1

    result = run_action(client, "merge-operations")
    assert result.processed == 1

    body = client.get("/v1/files", params={"dir": "docs"}).json()
    assert [item["name"] for item in body["files"]] == ["docs/later.txt", TEST_FILE_PATH]
    assert body["indexLastUpdated"] > 0


def test__list_files__filters_and_count_only(client: TestClient):
    upload(client, "docs/a.txt", tags="work")
    upload(client, "docs/b.txt", tags="work,private")
    upload(client, "docs/c.txt")
    run_action(client, "rebuild")

    body = client.get("/v1/files", params={"dir": "docs", "includeTags": "work", "excludeTags": "private"}).json()
    assert [item["name"] for item in body["files"]] == ["docs/a.txt"]

    body = client.get("/v1/files", params={"dir": "docs", "start": "1", "count": "1"}).json()
    assert [item["name"] for item in body["files"]] == ["docs/b.txt"]
    assert body["totalCount"] == 3

    body = client.get("/v1/files", params={"dir": "docs", "count": "-1", "sum": "true"}).json()
    assert body["sum"] == 3
    assert body["isIndexedResponse"] is True
    assert "files" not in body


def test__list_files__malformed_paging_uses_defaults(client: TestClient):
    upload(client, TEST_FILE_PATH)

    response = client.get("/v1/files", params={"dir": "docs", "start": "abc", "count": "0"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["returnedCount"] == 1


def test__list_files__strips_sensitive_metadata(client: TestClient):
    upload(client, TEST_FILE_PATH, channel="Telegram", listType="White")
    run_action(client, "rebuild")

    metadata = client.get("/v1/files", params={"dir": "docs"}).json()["files"][0]["metadata"]

    assert "Channel" not in metadata
    assert metadata["ListType"] == "White"
    assert metadata["FileType"].startswith(TEST_FILE_CONTENT_TYPE)


def test__delete_operations_action(client: TestClient):
    upload(client, TEST_FILE_PATH)

    result = run_action(client, "delete-operations")
    assert result.processed == 1

    info = client.get("/v1/files", params={"action": "info"}).json()
    assert info["pendingOperations"] == 0
    assert info["lastTask"]["task"] == "delete-operations"


def test__info_and_storage_stats_actions(client: TestClient):
    upload(client, TEST_FILE_PATH)
    run_action(client, "rebuild")

    info = client.get("/v1/files", params={"action": "info"}).json()
    assert info["indexAvailable"] is True
    assert info["totalCount"] == 1
    assert info["lastTask"]["status"] == "completed"

    stats = client.get("/v1/files", params={"action": "index-storage-stats"}).json()
    assert stats["totalRecords"] == 1
    assert stats["chunkCount"] == 1


def test__merge_without_index_records_failure(client: TestClient):
    upload(client, TEST_FILE_PATH)
    response = client.get("/v1/files", params={"action": "merge-operations"})
    handle = client.app.state.maintenance.get(response.json()["taskId"])

    assert handle.future.exception(timeout=30) is not None

    info = client.get("/v1/files", params={"action": "info"}).json()
    assert info["lastTask"]["status"] == "failed"
    assert info["pendingOperations"] == 1


def test__unknown_action(client: TestClient):
    response = client.get("/v1/files", params={"action": "explode"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test__random_file(client: TestClient):
    upload(client, TEST_IMAGE_PATH, TEST_IMAGE_CONTENT, TEST_IMAGE_CONTENT_TYPE)
    upload(client, TEST_FILE_PATH)

    response = client.get("/v1/random")
    assert response.json() == {"url": f"/v1/files/{TEST_IMAGE_PATH}"}

    response = client.get("/v1/random", params={"form": "text"})
    assert response.text == f"/v1/files/{TEST_IMAGE_PATH}"

    response = client.get("/v1/random", params={"type": "url"})
    assert response.json()["url"].endswith(f"/v1/files/{TEST_IMAGE_PATH}")
    assert response.json()["url"].startswith("http")

    response = client.get("/v1/random", params={"type": "img"})
    assert response.content == TEST_IMAGE_CONTENT

    response = client.get("/v1/random", params={"content": "video"})
    assert response.json() == {}


def test__random_file__disabled_and_disallowed(test_settings):
    disabled = create_app(settings=test_settings.model_copy(update={"random_enabled": False}))
    with TestClient(disabled) as client:
        response = client.get("/v1/random")
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json() == {"error": "Random is disabled"}

    restricted = create_app(settings=test_settings.model_copy(update={"random_allowed_dirs": "img"}))
    with TestClient(restricted) as client:
        assert client.get("/v1/random", params={"dir": "docs"}).status_code == status.HTTP_403_FORBIDDEN
        assert client.get("/v1/random", params={"dir": "/img/2024"}).status_code == status.HTTP_200_OK


def test__health(client: TestClient):
    response = client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["ready"] is True
    assert body["deployment_mode"] == "local-dev"
