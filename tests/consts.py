"""Constants used in tests."""

TEST_BUCKET_NAME = "test-files-index-bucket"
