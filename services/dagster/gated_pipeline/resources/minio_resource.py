# =============================================================================
# MinIO Resource - Landing / Quarantine Object Storage
# =============================================================================
# Provides MinIO operations for the landing zone: listing newly arrived
# objects for the trigger listener and moving rejected objects to quarantine.
# =============================================================================

from typing import NamedTuple

from minio import Minio
from minio.commonconfig import CopySource
from minio.error import S3Error
from dagster import ConfigurableResource
from pydantic import Field

from libs.orchestration import MoveOutcome


class LandingObject(NamedTuple):
    """A data object in the landing zone, identified by key and content tag."""

    key: str
    etag: str


_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchBucket"})
_DENIED_CODES = frozenset({"AccessDenied", "AllAccessDisabled"})


class MinIOResource(ConfigurableResource):
    """
    Dagster resource for MinIO (S3-compatible object storage) operations.

    Provides methods for:
    - Listing newly landed objects under the landing prefix
    - Moving rejected objects under the quarantine prefix
    - Building s3:// locations handed to discovery jobs

    Attributes:
        endpoint: MinIO server endpoint (host:port)
        access_key: Access key for authentication
        secret_key: Secret key for authentication
        use_ssl: Whether to use SSL/TLS (default: False)
        landing_bucket: Landing zone bucket name (default: "landing-zone")
        landing_prefix: Prefix watched for new objects (default: "raw/")
        quarantine_prefix: Prefix rejected objects are moved under (default: "quarantine/")
    """

    endpoint: str = Field(..., description="MinIO server endpoint (host:port)")
    access_key: str = Field(..., description="Access key for authentication")
    secret_key: str = Field(..., description="Secret key for authentication")
    use_ssl: bool = Field(False, description="Whether to use SSL/TLS")
    landing_bucket: str = Field("landing-zone", description="Landing zone bucket name")
    landing_prefix: str = Field("raw/", description="Prefix watched for new objects")
    quarantine_prefix: str = Field("quarantine/", description="Prefix for rejected objects")

    def get_client(self) -> Minio:
        """
        Create a MinIO client instance.

        Returns:
            Configured Minio client
        """
        return Minio(
            self.endpoint,
            access_key=self.access_key,
            secret_key=self.secret_key,
            secure=self.use_ssl,
        )

    def location_for(self, key: str) -> str:
        """Full s3:// location of an object in the landing bucket."""
        return f"s3://{self.landing_bucket}/{key}"

    def list_landing_objects(self) -> list[LandingObject]:
        """
        List data objects under the landing prefix.

        Skips directory placeholders (keys ending in "/").

        Returns:
            LandingObject per data object (key plus etag, so a re-upload
            under the same key is told apart); empty list if none

        Raises:
            RuntimeError: If the landing bucket does not exist
            S3Error: For other storage errors
        """
        client = self.get_client()

        try:
            objects = client.list_objects(
                self.landing_bucket,
                prefix=self.landing_prefix,
                recursive=True,
            )
            return [
                LandingObject(obj.object_name, (obj.etag or "").strip('"'))
                for obj in objects
                if not obj.object_name.endswith("/")
            ]
        except S3Error as exc:
            if exc.code == "NoSuchBucket":
                raise RuntimeError(
                    f"Landing bucket '{self.landing_bucket}' does not exist"
                ) from exc
            raise

    def move_object(self, source_key: str, destination_prefix: str) -> MoveOutcome:
        """
        Move an object within the landing bucket under destination_prefix.

        Copies to `{destination_prefix}{source_key}` and deletes the original.
        A missing source is reported as NOT_FOUND (an earlier attempt may have
        moved it already); access errors as PERMISSION_DENIED.

        Args:
            source_key: Key of the object to move (e.g., "raw/movies.csv")
            destination_prefix: Prefix to move it under (e.g., "quarantine/")

        Raises:
            S3Error: For storage errors other than not-found / access-denied
        """
        client = self.get_client()
        destination_key = f"{destination_prefix.rstrip('/')}/{source_key}"

        try:
            client.copy_object(
                self.landing_bucket,
                destination_key,
                CopySource(self.landing_bucket, source_key),
            )
        except S3Error as exc:
            if exc.code in _NOT_FOUND_CODES:
                return MoveOutcome.NOT_FOUND
            if exc.code in _DENIED_CODES:
                return MoveOutcome.PERMISSION_DENIED
            raise

        try:
            client.remove_object(self.landing_bucket, source_key)
        except S3Error as exc:
            if exc.code in _DENIED_CODES:
                return MoveOutcome.PERMISSION_DENIED
            # Tolerate NoSuchKey - already removed
            if exc.code not in _NOT_FOUND_CODES:
                raise

        return MoveOutcome.OK
