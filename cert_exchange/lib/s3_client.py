"""S3 client for the certificate intake bucket."""

import boto3
from botocore.config import Config


class S3Client:
    """S3 client that records certificates handed out over the WWW medium."""

    def __init__(self, region: str = "eu-west-2", timeout: float | None = None) -> None:
        """Initialize S3 client.

        Args:
            region: AWS region for S3 client
            timeout: Connect and read timeout in seconds for each request
        """
        config = None
        if timeout is not None:
            # bounds the worker thread itself, not only the caller waiting on it
            config = Config(
                connect_timeout=timeout, read_timeout=timeout, retries={"total_max_attempts": 1}
            )
        self.client = boto3.client("s3", region_name=region, config=config)

    def upload_certificate_archive(
        self, bucket_name: str, device_id: str, archive: bytes, key: str | None = None
    ) -> str:
        """Upload a zipped set of exchanged certificates.

        Args:
            bucket_name: S3 bucket name
            device_id: Device identifier the certificates were issued for
            archive: Zip archive content
            key: S3 object key (default: certificates/{device_id}/certs.zip)

        Returns:
            S3 version ID if versioning enabled, empty string otherwise

        Raises:
            ClientError: If upload fails
        """
        response = self.client.put_object(
            Bucket=bucket_name,
            Key=key or f"certificates/{device_id}/certs.zip",
            Body=archive,
            ContentType="application/zip",
            Metadata={"device_id": device_id},
        )
        return response.get("VersionId", "")
