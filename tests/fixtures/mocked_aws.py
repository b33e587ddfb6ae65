import os

import boto3
import pytest
from moto import mock_aws

from tests.consts import TEST_BUCKET_NAME


def point_away_from_aws() -> None:
    """Make sure no test can reach real AWS credentials or endpoints."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    os.environ.pop("AWS_ENDPOINT_URL", None)
    os.environ.pop("AWS_PROFILE", None)


@pytest.fixture
def mocked_aws():
    """Moto-backed AWS with an empty test bucket."""
    with mock_aws():
        point_away_from_aws()

        s3_client = boto3.client("s3")
        s3_client.create_bucket(Bucket=TEST_BUCKET_NAME)

        yield

        # Clean up the bucket so every test starts empty
        response = s3_client.list_objects_v2(Bucket=TEST_BUCKET_NAME)
        for item in response.get("Contents", []):
            s3_client.delete_object(Bucket=TEST_BUCKET_NAME, Key=item["Key"])
        s3_client.delete_bucket(Bucket=TEST_BUCKET_NAME)
