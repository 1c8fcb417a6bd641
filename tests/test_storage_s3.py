import hashlib
import io
import json

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from provider_mirror.checksums import hash_zip
from provider_mirror.errors import StorageError
from provider_mirror.models import EtagRecord, ProviderTarget
from provider_mirror.storage.s3 import S3Storage
from provider_mirror.storage.s3_client import S3BlobClient, normalize_etag


class InMemoryBlobClient:
    """Blob client double keeping objects in a dict, ETags are quoted MD5s like S3's."""

    def __init__(self):
        self.objects = {}

    def get(self, key):
        if key not in self.objects:
            raise StorageError(f"{key} does not exist")
        return self.objects[key]

    def put(self, key, data, content_type=None):
        self.objects[key] = bytes(data)
        return f'"{hashlib.md5(data).hexdigest()}"'

    def list(self, prefix):
        return {
            key: {"ETag": f'"{hashlib.md5(data).hexdigest()}"', "Size": len(data)}
            for key, data in self.objects.items()
            if key.startswith(prefix)
        }

    def delete(self, key):
        self.objects.pop(key, None)


@pytest.fixture
def blob_client():
    return InMemoryBlobClient()


@pytest.fixture
def storage(blob_client, provider):
    return S3Storage(blob_client, "mirror/", provider)


@pytest.fixture
def committed(storage, provider, target, zip_bytes):
    artifacts = [
        storage.write(zip_bytes, target),
        storage.write(zip_bytes, ProviderTarget(provider, "5.1.0", "linux", "amd64")),
    ]
    storage.commit(artifacts)
    return artifacts


# --- Tests for S3Storage ---

def test_key_layout(blob_client, provider):
    assert S3Storage(blob_client, "/mirror/", provider).key_for("index.json") == \
        "mirror/registry.terraform.io/hashicorp/aws/index.json"
    assert S3Storage(blob_client, "", provider).key_for("index.json") == \
        "registry.terraform.io/hashicorp/aws/index.json"


def test_write_uploads_and_records_etag(storage, blob_client, target, zip_bytes, tmp_path):
    artifact = storage.write(zip_bytes, target)

    key = "mirror/registry.terraform.io/hashicorp/aws/terraform-provider-aws_5.0.0_linux_amd64.zip"
    assert blob_client.objects[key] == zip_bytes
    assert artifact.location == key
    local_copy = tmp_path / "copy.zip"
    local_copy.write_bytes(zip_bytes)
    assert artifact.h1_checksum == hash_zip(local_copy)
    assert artifact.etag_record == EtagRecord(etag=f'"{hashlib.md5(zip_bytes).hexdigest()}"',
                                              h1_checksum=artifact.h1_checksum)


def test_write_rejects_non_zip(storage, blob_client, target):
    with pytest.raises(StorageError):
        storage.write(b"not a zip", target)
    assert blob_client.objects == {}


def test_commit_writes_catalog_and_etag_map(storage, blob_client, committed):
    prefix = "mirror/registry.terraform.io/hashicorp/aws/"
    index = json.loads(blob_client.objects[prefix + "index.json"])
    assert index == {"versions": {"5.0.0": {}, "5.1.0": {}}}

    manifest = json.loads(blob_client.objects[prefix + "5.0.0.json"])
    assert manifest == {"archives": {"linux_amd64": {
        "hashes": [committed[0].h1_checksum],
        "url": "terraform-provider-aws_5.0.0_linux_amd64.zip",
    }}}

    etag_map = json.loads(blob_client.objects[prefix + ".etag-map.json"])
    assert etag_map["terraform-provider-aws_5.0.0_linux_amd64.zip"] == {
        "ETag": committed[0].etag_record.etag,
        "H1Checksum": committed[0].h1_checksum,
    }


def test_load_and_verify_round_trip(storage, committed):
    loaded = storage.load_catalog()

    assert {a.target for a in loaded} == {a.target for a in committed}
    assert {a.location: a.etag_record for a in loaded} == {a.location: a.etag_record for a in committed}

    valid, invalid = storage.verify(loaded)
    assert len(valid) == 2
    assert invalid == []


def test_verify_detects_replaced_and_missing_objects(storage, blob_client, committed, make_zip):
    blob_client.objects[committed[0].location] = make_zip({"other": b"contents"})
    blob_client.delete(committed[1].location)

    valid, invalid = storage.verify(storage.load_catalog())

    assert valid == []
    assert {a.target for a in invalid} == {a.target for a in committed}


def test_verify_requires_etag_record(storage, blob_client, committed):
    etag_map_key = storage.key_for(".etag-map.json")
    blob_client.objects[etag_map_key] = b"{}"

    valid, invalid = storage.verify(storage.load_catalog())

    assert valid == []
    assert len(invalid) == 2


def test_verify_detects_h1_disagreement(storage, blob_client, committed):
    etag_map_key = storage.key_for(".etag-map.json")
    etag_map = json.loads(blob_client.objects[etag_map_key])
    etag_map["terraform-provider-aws_5.0.0_linux_amd64.zip"]["H1Checksum"] = "h1:somethingelse"
    blob_client.objects[etag_map_key] = json.dumps(etag_map).encode()

    valid, invalid = storage.verify(storage.load_catalog())

    assert [a.version for a in valid] == ["5.1.0"]
    assert [a.version for a in invalid] == ["5.0.0"]


def test_load_catalog_missing_index(storage):
    with pytest.raises(StorageError):
        storage.load_catalog()


def test_load_catalog_malformed_index(storage, blob_client):
    blob_client.objects[storage.key_for("index.json")] = b"[]"

    with pytest.raises(StorageError):
        storage.load_catalog()


def test_load_catalog_missing_manifest_is_skipped(storage, blob_client, committed):
    blob_client.delete(storage.key_for("5.0.0.json"))

    loaded = storage.load_catalog()

    assert [a.version for a in loaded] == ["5.1.0"]


# --- Tests for S3BlobClient ---

@pytest.fixture
def mock_s3(mocker):
    return mocker.MagicMock()


@pytest.fixture
def client(mock_s3):
    return S3BlobClient("my-bucket", client=mock_s3)


def _client_error(code, operation="GetObject"):
    return ClientError({"Error": {"Code": code, "Message": "boom"}}, operation)


@pytest.mark.parametrize("raw, expected", [
    ('"abc123"', "abc123"),
    ('W/"ABC123"', "abc123"),
    ("abc123", "abc123"),
    (None, ""),
    ("", ""),
])
def test_normalize_etag(raw, expected):
    assert normalize_etag(raw) == expected


def test_client_get(client, mock_s3):
    mock_s3.get_object.return_value = {"Body": io.BytesIO(b"payload")}

    assert client.get("some/key") == b"payload"
    mock_s3.get_object.assert_called_once_with(Bucket="my-bucket", Key="some/key")


@pytest.mark.parametrize("code", ["NoSuchKey", "404", "AccessDenied"])
def test_client_get_errors(client, mock_s3, code):
    mock_s3.get_object.side_effect = _client_error(code)

    with pytest.raises(StorageError):
        client.get("some/key")


def test_client_get_connection_error(client, mock_s3):
    mock_s3.get_object.side_effect = EndpointConnectionError(endpoint_url="http://minio:9000")

    with pytest.raises(StorageError):
        client.get("some/key")


def test_client_put(client, mock_s3):
    mock_s3.put_object.return_value = {"ETag": '"abc"'}

    assert client.put("k.json", b"{}", "application/json") == '"abc"'
    mock_s3.put_object.assert_called_once_with(
        Bucket="my-bucket", Key="k.json", Body=b"{}", ContentType="application/json")


def test_client_put_without_content_type(client, mock_s3):
    mock_s3.put_object.return_value = {"ETag": '"abc"'}

    client.put("k.zip", b"zip")

    mock_s3.put_object.assert_called_once_with(Bucket="my-bucket", Key="k.zip", Body=b"zip")


def test_client_put_error(client, mock_s3):
    mock_s3.put_object.side_effect = _client_error("InternalError", "PutObject")

    with pytest.raises(StorageError):
        client.put("k.zip", b"zip")


def test_client_list_paginates(client, mock_s3):
    paginator = mock_s3.get_paginator.return_value
    paginator.paginate.return_value = [
        {"Contents": [{"Key": "p/a.zip", "ETag": '"1"', "Size": 10}]},
        {"Contents": [{"Key": "p/b.zip", "ETag": '"2"', "Size": 20}]},
        {},
    ]

    objects = client.list("p/")

    mock_s3.get_paginator.assert_called_once_with("list_objects_v2")
    paginator.paginate.assert_called_once_with(Bucket="my-bucket", Prefix="p/")
    assert objects == {"p/a.zip": {"ETag": '"1"', "Size": 10}, "p/b.zip": {"ETag": '"2"', "Size": 20}}


def test_client_delete(client, mock_s3):
    client.delete("p/a.zip")
    mock_s3.delete_object.assert_called_once_with(Bucket="my-bucket", Key="p/a.zip")

    mock_s3.delete_object.side_effect = _client_error("AccessDenied", "DeleteObject")
    with pytest.raises(StorageError):
        client.delete("p/a.zip")


def test_client_custom_endpoint_pins_region(mocker):
    boto_client = mocker.patch("provider_mirror.storage.s3_client.boto3.client")

    S3BlobClient("my-bucket", endpoint="http://minio:9000", region="eu-west-1")

    _, kwargs = boto_client.call_args
    assert boto_client.call_args[0] == ("s3",)
    assert kwargs["endpoint_url"] == "http://minio:9000"
    assert kwargs["region_name"] == "us-east-1"


def test_client_aws_region(mocker):
    boto_client = mocker.patch("provider_mirror.storage.s3_client.boto3.client")

    S3BlobClient("my-bucket", region="eu-west-1")

    _, kwargs = boto_client.call_args
    assert "endpoint_url" not in kwargs
    assert kwargs["region_name"] == "eu-west-1"
