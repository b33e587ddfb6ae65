"""
Object store adapters for file records and index bookkeeping.

Every implementation exposes the same key-value contract: get/put/delete of a
single key and cursor-paginated listing that returns each key with its
metadata. The implementation is chosen from the deployment mode.
"""

import base64
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union
from urllib.parse import quote, unquote

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    EndpointConnectionError,
)

from files_index.config.settings import Settings
from files_index.errors import StoreAdapterError
from files_index.utils.decorators import retry

if TYPE_CHECKING:
    from mypy_boto3_s3 import S3Client

logger = logging.getLogger(__name__)

# S3 user metadata header carrying the JSON encoded record metadata
S3_METADATA_FIELD = "record"


@dataclass
class KeyEntry:
    """A listed key and the metadata attached to it."""
    name: str
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class ListPage:
    """One page of a key listing; cursor is None on the last page."""
    keys: List[KeyEntry] = field(default_factory=list)
    cursor: Optional[str] = None


@dataclass
class StoredObject:
    value: bytes
    metadata: Optional[Dict[str, Any]] = None


def _to_bytes(value: Union[bytes, str]) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return value


class BaseObjectStore:
    """Base class for object stores (to be extended by specific implementations)"""

    def get(self, key: str) -> Optional[bytes]:
        stored = self.get_with_metadata(key)
        return stored.value if stored else None

    def get_with_metadata(self, key: str) -> Optional[StoredObject]:
        raise NotImplementedError

    def put(self, key: str, value: Union[bytes, str], metadata: Optional[Dict[str, Any]] = None) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def list(self, prefix: str = "", limit: int = 1000, cursor: Optional[str] = None) -> ListPage:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        return self.get_with_metadata(key) is not None

    def describe(self) -> str:
        return self.__class__.__name__


class LocalObjectStore(BaseObjectStore):
    """Stores each key as a JSON document under a local directory."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root) / "objects"
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info("LocalObjectStore initialized at: %s", self.root)

    def _path(self, key: str) -> Path:
        return self.root / f"{quote(key, safe='')}.json"

    def get_with_metadata(self, key: str) -> Optional[StoredObject]:
        path = self._path(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
            # binascii.Error is a ValueError
            return StoredObject(
                value=base64.b64decode(document["value"], validate=True),
                metadata=document.get("metadata"),
            )
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Error reading local object {key}: {str(e)}")
            raise StoreAdapterError(f"Failed to read '{key}': {e}") from e

    def put(self, key: str, value: Union[bytes, str], metadata: Optional[Dict[str, Any]] = None) -> None:
        document = {
            "key": key,
            "value": base64.b64encode(_to_bytes(value)).decode("ascii"),
            "metadata": metadata,
        }
        path = self._path(key)
        try:
            # Write then rename so readers never see a half written document
            fd, tmp_path = tempfile.mkstemp(dir=self.root, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error(f"Error writing local object {key}: {str(e)}")
            raise StoreAdapterError(f"Failed to write '{key}': {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StoreAdapterError(f"Failed to delete '{key}': {e}") from e

    def list(self, prefix: str = "", limit: int = 1000, cursor: Optional[str] = None) -> ListPage:
        try:
            names = sorted(
                unquote(path.name[: -len(".json")])
                for path in self.root.glob("*.json")
            )
        except OSError as e:
            raise StoreAdapterError(f"Failed to list '{prefix}': {e}") from e

        selected = [
            name for name in names
            if name.startswith(prefix) and (cursor is None or name > cursor)
        ]
        page_names = selected[:limit]

        keys = []
        for name in page_names:
            stored = self.get_with_metadata(name)
            if stored is None:
                # Deleted between listing and reading
                continue
            keys.append(KeyEntry(name=name, metadata=stored.metadata))

        next_cursor = page_names[-1] if len(selected) > limit else None
        return ListPage(keys=keys, cursor=next_cursor)

    def describe(self) -> str:
        return f"local:{self.root}"


class S3ObjectStore(BaseObjectStore):
    """
    Stores each key as an S3 object.

    Record metadata travels as JSON in a single user metadata header, so it is
    bounded by the S3 limit of 2 KB of user metadata per object.
    """

    def __init__(self, bucket_name: str, s3_client: Optional["S3Client"] = None):
        self.bucket_name = bucket_name
        self.s3 = s3_client or boto3.client("s3")
        logger.info(f"S3ObjectStore initialized for bucket: {bucket_name}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ObjectStore":
        s3_client = boto3.client(
            "s3",
            endpoint_url=settings.aws_endpoint_url,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            region_name=settings.aws_region,
        )
        logger.info(f"  Endpoint: {settings.aws_endpoint_url}")
        logger.info(f"  Region: {settings.aws_region}")
        return cls(settings.s3_bucket_name, s3_client=s3_client)

    @retry(max_attempts=3, delay=0.2, exceptions=(EndpointConnectionError, ConnectionClosedError))
    def _call(self, operation: str, **kwargs) -> Dict[str, Any]:
        return getattr(self.s3, operation)(Bucket=self.bucket_name, **kwargs)

    @staticmethod
    def _is_not_found(error: ClientError) -> bool:
        return error.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound")

    @staticmethod
    def _decode_metadata(raw: Dict[str, str]) -> Optional[Dict[str, Any]]:
        encoded = raw.get(S3_METADATA_FIELD)
        if not encoded:
            return None
        try:
            return json.loads(encoded)
        except ValueError:
            logger.warning("Ignoring undecodable record metadata")
            return None

    def get_with_metadata(self, key: str) -> Optional[StoredObject]:
        try:
            response = self._call("get_object", Key=key)
            body = response["Body"].read()
        except ClientError as e:
            if self._is_not_found(e):
                return None
            logger.error(f"Error reading {key} from S3: {str(e)}")
            raise StoreAdapterError(f"Failed to read '{key}': {e}") from e
        except BotoCoreError as e:
            raise StoreAdapterError(f"Failed to read '{key}': {e}") from e
        return StoredObject(value=body, metadata=self._decode_metadata(response.get("Metadata", {})))

    def _head_metadata(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            response = self._call("head_object", Key=key)
        except ClientError as e:
            if self._is_not_found(e):
                return None
            raise StoreAdapterError(f"Failed to read metadata of '{key}': {e}") from e
        except BotoCoreError as e:
            raise StoreAdapterError(f"Failed to read metadata of '{key}': {e}") from e
        return self._decode_metadata(response.get("Metadata", {}))

    def put(self, key: str, value: Union[bytes, str], metadata: Optional[Dict[str, Any]] = None) -> None:
        kwargs: Dict[str, Any] = {"Key": key, "Body": _to_bytes(value)}
        if metadata is not None:
            kwargs["Metadata"] = {S3_METADATA_FIELD: json.dumps(metadata)}
        try:
            self._call("put_object", **kwargs)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error uploading {key} to S3: {str(e)}")
            raise StoreAdapterError(f"Failed to write '{key}': {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._call("delete_object", Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error deleting {key} from S3: {str(e)}")
            raise StoreAdapterError(f"Failed to delete '{key}': {e}") from e

    def list(self, prefix: str = "", limit: int = 1000, cursor: Optional[str] = None) -> ListPage:
        kwargs: Dict[str, Any] = {"Prefix": prefix, "MaxKeys": limit}
        if cursor:
            kwargs["ContinuationToken"] = cursor
        try:
            response = self._call("list_objects_v2", **kwargs)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error listing '{prefix}' in S3: {str(e)}")
            raise StoreAdapterError(f"Failed to list '{prefix}': {e}") from e

        keys = [
            KeyEntry(name=item["Key"], metadata=self._head_metadata(item["Key"]))
            for item in response.get("Contents", [])
        ]
        next_cursor = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        return ListPage(keys=keys, cursor=next_cursor)

    def describe(self) -> str:
        return f"s3://{self.bucket_name}"


class StoreFactory:
    """Factory to initialize the correct object store based on deployment mode"""

    @staticmethod
    def get_store(settings: Settings) -> BaseObjectStore:
        store_builders = {
            "local-dev": lambda: LocalObjectStore(settings.storage_dir),
            "aws-mock": lambda: S3ObjectStore.from_settings(settings),
            "aws-prod": lambda: S3ObjectStore.from_settings(settings),
        }

        deployment_mode = settings.deployment_mode
        if deployment_mode not in store_builders:
            raise ValueError(
                f"Invalid deployment_mode: {deployment_mode}. "
                f"Choose from {list(store_builders.keys())}"
            )

        logger.info(f"Creating object store for mode: {deployment_mode}")
        return store_builders[deployment_mode]()
