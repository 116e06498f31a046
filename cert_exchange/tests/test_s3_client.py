"""Tests for S3 client module."""

from collections.abc import Generator
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from cert_exchange.lib.s3_client import S3Client


class TestS3Client:
    """Tests for S3Client class."""

    @pytest.fixture
    def mock_boto3(self) -> Generator[MagicMock]:
        """Mock boto3 for S3."""
        with patch("cert_exchange.lib.s3_client.boto3") as mock:
            yield mock

    def test_client_uses_region(self, mock_boto3: MagicMock) -> None:
        S3Client(region="us-east-1")

        mock_boto3.client.assert_called_once_with("s3", region_name="us-east-1", config=None)

    def test_timeout_bounds_each_request(self, mock_boto3: MagicMock) -> None:
        """Socket timeouts stop a stalled upload thread, not just the awaiting caller."""
        S3Client(region="us-east-1", timeout=5)

        config = mock_boto3.client.call_args.kwargs["config"]
        assert config.connect_timeout == 5
        assert config.read_timeout == 5
        assert config.retries == {"total_max_attempts": 1}

    def test_upload_archive_returns_version_id(self, mock_boto3: MagicMock) -> None:
        """Should return version ID from upload response."""
        mock_s3 = MagicMock()
        mock_s3.put_object.return_value = {"VersionId": "abc123"}
        mock_boto3.client.return_value = mock_s3

        client = S3Client()
        result = client.upload_certificate_archive("cert-intake", "device-1", b"zip content")

        assert result == "abc123"
        mock_s3.put_object.assert_called_once_with(
            Bucket="cert-intake",
            Key="certificates/device-1/certs.zip",
            Body=b"zip content",
            ContentType="application/zip",
            Metadata={"device_id": "device-1"},
        )

    def test_upload_archive_no_versioning(self, mock_boto3: MagicMock) -> None:
        """Should return empty string when versioning disabled."""
        mock_s3 = MagicMock()
        mock_s3.put_object.return_value = {}
        mock_boto3.client.return_value = mock_s3

        client = S3Client()

        assert client.upload_certificate_archive("cert-intake", "device-1", b"zip") == ""

    def test_upload_archive_custom_key(self, mock_boto3: MagicMock) -> None:
        """Should use custom key when provided."""
        mock_s3 = MagicMock()
        mock_s3.put_object.return_value = {}
        mock_boto3.client.return_value = mock_s3

        client = S3Client()
        client.upload_certificate_archive("cert-intake", "device-1", b"zip", key="custom.zip")

        assert mock_s3.put_object.call_args.kwargs["Key"] == "custom.zip"

    def test_upload_archive_failure(self, mock_boto3: MagicMock) -> None:
        """Should raise ClientError on upload failure."""
        mock_s3 = MagicMock()
        mock_s3.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "PutObject"
        )
        mock_boto3.client.return_value = mock_s3

        client = S3Client()

        with pytest.raises(ClientError):
            client.upload_certificate_archive("cert-intake", "device-1", b"zip")
