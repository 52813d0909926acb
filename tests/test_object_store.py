"""
Tests for execution/legal_memo/object_store.py

Covers: configuration gating, URL formats, successful uploads and the
        classification of boto3 failures. The boto3 client is mocked.
"""

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from execution.legal_memo.config import StorageConfig
from execution.legal_memo.errors import ErrorKind, ServiceError
from execution.legal_memo.object_store import ObjectStoreClient, storage_error


def client_error(code: str, operation: str = "PutObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class TestConfiguration:

    def test_unconfigured_store_has_no_client(self):
        store = ObjectStoreClient(StorageConfig())
        assert store.is_configured is False

    def test_upload_without_configuration_raises(self):
        store = ObjectStoreClient(StorageConfig(bucket="legal-docs"))
        with pytest.raises(ServiceError) as exc_info:
            store.upload(b"data", "documents/1-a.txt")
        assert exc_info.value.kind == ErrorKind.CONFIGURATION
        assert "STORAGE_ACCESS_KEY" in exc_info.value.detail

    def test_missing_vars_listed(self):
        cfg = StorageConfig(access_key="a")
        assert cfg.missing_vars() == ["STORAGE_SECRET_KEY", "STORAGE_BUCKET"]
        assert "RESTART" in cfg.diagnostic()

    def test_configured_store_builds_boto_client(self, storage_config, monkeypatch):
        created = {}

        def fake_client(service, **kwargs):
            created["service"] = service
            created.update(kwargs)
            return object()

        monkeypatch.setattr("execution.legal_memo.object_store.boto3.client", fake_client)
        store = ObjectStoreClient(storage_config)
        assert store.is_configured is True
        assert created["service"] == "s3"
        assert created["region_name"] == "eu-central-1"
        assert created["aws_access_key_id"] == "test-access"


# ---------------------------------------------------------------------------
# URLs
# ---------------------------------------------------------------------------

class TestObjectUrl:

    def test_aws_virtual_host_url(self, object_store):
        url = object_store.object_url("documents/1-a.pdf")
        assert url == "https://legal-docs.s3.eu-central-1.amazonaws.com/documents/1-a.pdf"

    def test_custom_endpoint_url(self, mock_boto_client):
        cfg = StorageConfig(
            access_key="a", secret_key="b", bucket="legal-docs",
            endpoint="https://r2.example.com/",
        )
        store = ObjectStoreClient(cfg, client=mock_boto_client)
        assert store.object_url("k.pdf") == "https://r2.example.com/legal-docs/k.pdf"

    def test_public_base_wins(self, mock_boto_client):
        cfg = StorageConfig(
            access_key="a", secret_key="b", bucket="legal-docs",
            public_url_base="https://cdn.example.com/",
        )
        store = ObjectStoreClient(cfg, client=mock_boto_client)
        assert store.object_url("k.pdf") == "https://cdn.example.com/k.pdf"


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

class TestUpload:

    def test_upload_puts_and_verifies(self, object_store, mock_boto_client):
        url = object_store.upload(b"data", "documents/1-a.pdf", "application/pdf")

        mock_boto_client.put_object.assert_called_once_with(
            Bucket="legal-docs",
            Key="documents/1-a.pdf",
            Body=b"data",
            ContentType="application/pdf",
        )
        mock_boto_client.head_object.assert_called_once_with(
            Bucket="legal-docs", Key="documents/1-a.pdf",
        )
        assert url.endswith("/documents/1-a.pdf")

    def test_access_denied_is_permission(self, object_store, mock_boto_client):
        mock_boto_client.put_object.side_effect = client_error("AccessDenied")
        with pytest.raises(ServiceError) as exc_info:
            object_store.upload(b"data", "documents/1-a.pdf")
        assert exc_info.value.kind == ErrorKind.PERMISSION
        assert "Permission denied" in exc_info.value.user_message

    def test_missing_after_upload_is_not_found(self, object_store, mock_boto_client):
        mock_boto_client.head_object.side_effect = client_error("404", "HeadObject")
        with pytest.raises(ServiceError) as exc_info:
            object_store.upload(b"data", "documents/1-a.pdf")
        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    def test_unreachable_endpoint_is_network(self, object_store, mock_boto_client):
        mock_boto_client.put_object.side_effect = EndpointConnectionError(
            endpoint_url="https://s3.example.com"
        )
        with pytest.raises(ServiceError) as exc_info:
            object_store.upload(b"data", "documents/1-a.pdf")
        assert exc_info.value.kind == ErrorKind.NETWORK

    def test_upload_is_attempted_once(self, object_store, mock_boto_client):
        mock_boto_client.put_object.side_effect = client_error("InternalError")
        with pytest.raises(ServiceError) as exc_info:
            object_store.upload(b"data", "documents/1-a.pdf")
        assert exc_info.value.kind == ErrorKind.UNKNOWN
        assert mock_boto_client.put_object.call_count == 1


class TestStorageError:

    @pytest.mark.parametrize("code,kind", [
        ("AccessDenied", ErrorKind.PERMISSION),
        ("InvalidAccessKeyId", ErrorKind.PERMISSION),
        ("NoSuchKey", ErrorKind.NOT_FOUND),
        ("NoSuchBucket", ErrorKind.NOT_FOUND),
        ("SlowDown", ErrorKind.UNKNOWN),
    ])
    def test_client_error_codes(self, code, kind):
        assert storage_error(client_error(code), "upload", "k").kind == kind
