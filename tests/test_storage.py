"""Tests for S3 attachment storage."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from conversai.core.config import get_settings
from conversai.core.exceptions import StorageConfigurationError, StorageUploadError
from conversai.services.storage import StorageService


def _settings(**overrides):
    values = {
        "S3_BUCKET_NAME": "attachments",
        "S3_REGION": "eu-west-1",
        "S3_ENDPOINT_URL": None,
        "S3_PUBLIC_BASE_URL": None,
        "S3_ACCESS_KEY_ID": None,
        "S3_SECRET_ACCESS_KEY": None,
    }
    values.update(overrides)
    return get_settings().model_copy(update=values)


def test_upload_bytes_puts_object() -> None:
    s3 = MagicMock()
    service = StorageService(_settings(), client=s3)

    result = service.upload_bytes(b"%PDF", "../reports/Q3 report.pdf", "application/pdf")

    kwargs = s3.put_object.call_args.kwargs
    assert kwargs["Bucket"] == "attachments"
    assert kwargs["Body"] == b"%PDF"
    assert kwargs["ContentType"] == "application/pdf"
    assert kwargs["Key"] == result["id"]
    assert result["id"].startswith("uploads/")
    assert result["id"].endswith("/Q3_report.pdf")
    assert result["url"] == f"https://attachments.s3.eu-west-1.amazonaws.com/{result['id']}"


def test_upload_bytes_defaults_content_type() -> None:
    s3 = MagicMock()
    StorageService(_settings(), client=s3).upload_bytes(b"x", None, None)
    kwargs = s3.put_object.call_args.kwargs
    assert kwargs["ContentType"] == "application/octet-stream"
    assert kwargs["Key"].endswith("/file")


@pytest.mark.parametrize(
    "overrides, expected",
    [
        ({"S3_PUBLIC_BASE_URL": "https://cdn.example.com/"}, "https://cdn.example.com/uploads/a/b.png"),
        ({"S3_ENDPOINT_URL": "http://localhost:9000"}, "http://localhost:9000/attachments/uploads/a/b.png"),
        ({}, "https://attachments.s3.eu-west-1.amazonaws.com/uploads/a/b.png"),
    ],
)
def test_public_url(overrides: dict, expected: str) -> None:
    assert StorageService(_settings(**overrides)).public_url("uploads/a/b.png") == expected


def test_upload_failure_raises_storage_error() -> None:
    s3 = MagicMock()
    s3.put_object.side_effect = ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")

    with pytest.raises(StorageUploadError):
        StorageService(_settings(), client=s3).upload_bytes(b"x", "a.txt", "text/plain")


def test_missing_bucket_is_a_configuration_error() -> None:
    service = StorageService(_settings(S3_BUCKET_NAME=None))
    assert not service.is_enabled
    with pytest.raises(StorageConfigurationError):
        service.upload_bytes(b"x", "a.txt", "text/plain")


def test_client_created_lazily_with_endpoint() -> None:
    settings = _settings(
        S3_ENDPOINT_URL="http://localhost:9000",
        S3_ACCESS_KEY_ID="minio",
        S3_SECRET_ACCESS_KEY="minio123",
    )
    with patch("conversai.services.storage.boto3.client") as boto_client:
        service = StorageService(settings)
        boto_client.assert_not_called()

        service.upload_bytes(b"x", "a.txt", "text/plain")
        service.upload_bytes(b"y", "b.txt", "text/plain")

    boto_client.assert_called_once()
    kwargs = boto_client.call_args.kwargs
    assert kwargs["endpoint_url"] == "http://localhost:9000"
    assert kwargs["aws_access_key_id"] == "minio"
    assert kwargs["region_name"] == "eu-west-1"
    assert boto_client.return_value.put_object.call_count == 2
