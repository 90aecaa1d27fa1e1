"""Object store clients used by the publisher and the mutator.

``ObjectStoreClient`` is the narrow contract the rest of the package relies
on: fetch an object's bytes with its ETag, and write bytes, optionally
conditioned on a previously observed ETag. ``S3ObjectStore`` implements it
on top of a boto3 S3 client and works with AWS S3 as well as S3-compatible
stores (MinIO, SeaweedFS, ...) reachable through ``endpoint_url``.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from parameterizable import ParameterizableClass, sort_dict_by_keys

from .exceptions import BackendError
from .status_flags import ETagValue, WriteConflictFlag, WRITE_CONFLICT


@runtime_checkable
class ObjectStoreClient(Protocol):
    """Minimal object store contract: read with ETag, (conditional) write."""

    def get_object(self, bucket: str, key: str
                   ) -> tuple[bytes, ETagValue | None]:
        """Return the payload and ETag of an object.

        Raises:
            KeyError: If the object does not exist.
            BackendError: On any other failure.
        """
        ...

    def put_object(self, bucket: str, key: str, payload: bytes, *,
                   content_type: str | None = None,
                   cache_control: str | None = None,
                   if_match: ETagValue | None = None,
                   if_none_match: str | None = None,
                   ) -> ETagValue | None | WriteConflictFlag:
        """Write an object, optionally only if its ETag equals ``if_match``.

        Returns:
            The new ETag (None if the store does not report one), or
            WRITE_CONFLICT if a precondition (``if_match`` or
            ``if_none_match``) was given and did not hold.

        Raises:
            BackendError: On any failure other than a precondition mismatch.
        """
        ...


def not_found_error(e: ClientError) -> bool:
    """Helper function to check if a ClientError indicates a missing S3 object.

    Args:
        e: The ClientError exception to check.

    Returns:
        bool: True if the error indicates a missing object (404, NoSuchKey),
        False otherwise. A missing bucket is not a missing object.
    """
    error_code = e.response.get('Error', {}).get('Code')
    if error_code == 'NoSuchBucket':
        return False
    status = e.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
    if status == 404:
        return True
    else:
        return error_code in ('NoSuchKey', '404', 'NotFound')


def precondition_failed_error(e: ClientError) -> bool:
    """Check if a ClientError reports a failed write precondition.

    S3 answers 412 PreconditionFailed when the ``IfMatch`` ETag is stale or
    an ``IfNoneMatch: *`` target already exists, and 409
    ConditionalRequestConflict when another conditional write on the same
    key is in flight. All of them mean the caller lost the race.

    Args:
        e: The ClientError exception to check.

    Returns:
        bool: True for a precondition mismatch, False otherwise.
    """
    status = e.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
    error_code = e.response.get('Error', {}).get('Code')
    if status == 412:
        return True
    return error_code in ('PreconditionFailed', '412',
                          'ConditionalRequestConflict')


class S3ObjectStore(ParameterizableClass):
    """ObjectStoreClient backed by a boto3 S3 client.

    Credentials and, unless given, the region are resolved by boto3's
    standard chain (environment variables, shared config, instance roles).

    Attributes:
        region: AWS region passed to boto3, or None for the default.
        endpoint_url: Custom endpoint for S3-compatible stores, or None.
        s3_client: The underlying boto3 S3 client.
    """
    region: str | None
    endpoint_url: str | None

    def __init__(self, region: str | None = None,
                 endpoint_url: str | None = None,
                 s3_client: Any = None):
        """Initialize the store.

        Args:
            region: AWS region for the client. If None, uses the default
                client region from AWS configuration.
            endpoint_url: Endpoint of an S3-compatible store. If None, the
                regular AWS endpoint is used.
            s3_client: Pre-built boto3 S3 client. If given, region and
                endpoint_url are only reported by get_params().
        """
        self.region = region
        self.endpoint_url = endpoint_url
        if s3_client is not None:
            self.s3_client = s3_client
        else:
            client_kwargs = {}
            if region is not None:
                client_kwargs['region_name'] = region
            if endpoint_url is not None:
                client_kwargs['endpoint_url'] = endpoint_url
            self.s3_client = boto3.client('s3', **client_kwargs)
        ParameterizableClass.__init__(self)

    def get_params(self):
        """Return configuration parameters as a dictionary.

        Returns:
            dict: The region and endpoint_url, sorted by key names.
        """
        params = {
            "region": self.region,
            "endpoint_url": self.endpoint_url,
        }
        sorted_params = sort_dict_by_keys(params)
        return sorted_params

    @staticmethod
    def base_url(bucket: str) -> str:
        """Return the S3 URL of a bucket, e.g. ``s3://releases/``."""
        return f"s3://{bucket}/"

    def get_object(self, bucket: str, key: str
                   ) -> tuple[bytes, ETagValue | None]:
        """Download an object and its ETag.

        Args:
            bucket: Bucket name.
            key: Full object key.

        Returns:
            tuple[bytes, ETagValue | None]: Payload and ETag.

        Raises:
            KeyError: If the object does not exist.
            BackendError: If S3 reports any other error.
        """
        try:
            response = self.s3_client.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if not_found_error(e):
                raise KeyError(key)
            raise BackendError(
                f"failed to fetch s3://{bucket}/{key}: {e}",
                backend="s3", operation="get_object", key=key) from e
        except BotoCoreError as e:
            raise BackendError(
                f"failed to fetch s3://{bucket}/{key}: {e}",
                backend="s3", operation="get_object", key=key) from e

        body = response['Body']
        try:
            payload = body.read()
        except BotoCoreError as e:
            raise BackendError(
                f"failed to read body of s3://{bucket}/{key}: {e}",
                backend="s3", operation="get_object", key=key) from e
        finally:
            body.close()
        return payload, response.get("ETag")

    def put_object(self, bucket: str, key: str, payload: bytes, *,
                   content_type: str | None = None,
                   cache_control: str | None = None,
                   if_match: ETagValue | None = None,
                   if_none_match: str | None = None,
                   ) -> ETagValue | None | WriteConflictFlag:
        """Upload an object, optionally conditioned on its current ETag.

        Args:
            bucket: Bucket name.
            key: Full object key.
            payload: Bytes to store.
            content_type: Value of the Content-Type header, if any.
            cache_control: Value of the Cache-Control header, if any.
            if_match: If given, S3 rejects the write unless the object's
                current ETag equals this value.
            if_none_match: If ``"*"``, S3 rejects the write when the object
                already exists.

        Returns:
            ETagValue | None | WriteConflictFlag: The ETag of the new object,
            or WRITE_CONFLICT if the precondition failed.

        Raises:
            BackendError: If S3 rejects the write for any other reason.
        """
        put_kwargs = {'Bucket': bucket, 'Key': key, 'Body': payload}
        if content_type is not None:
            put_kwargs['ContentType'] = content_type
        if cache_control is not None:
            put_kwargs['CacheControl'] = cache_control
        if if_match is not None:
            put_kwargs['IfMatch'] = if_match
        if if_none_match is not None:
            put_kwargs['IfNoneMatch'] = if_none_match
        conditional = if_match is not None or if_none_match is not None

        try:
            response = self.s3_client.put_object(**put_kwargs)
        except ClientError as e:
            # A vanished object fails IfMatch with 404 rather than 412.
            if conditional and (precondition_failed_error(e) or (
                    if_match is not None and not_found_error(e))):
                return WRITE_CONFLICT
            raise BackendError(
                f"failed writing s3://{bucket}/{key}: {e}",
                backend="s3", operation="put_object", key=key) from e
        except BotoCoreError as e:
            raise BackendError(
                f"failed writing s3://{bucket}/{key}: {e}",
                backend="s3", operation="put_object", key=key) from e
        return response.get("ETag")
