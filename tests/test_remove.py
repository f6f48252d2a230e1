from __future__ import annotations

import pytest
from botocore.exceptions import ClientError

from s3_stream_storage import S3Storage


@pytest.mark.asyncio
async def test_remove_uses_bucket_and_key_from_result(s3_stub, make_file):
    storage = S3Storage(s3=s3_stub, bucket="test", key="to-delete")
    stored = await storage.handle_file(None, make_file())

    response = await storage.remove_file(None, stored)

    assert [op for op in s3_stub.operations() if op == "delete_object"] == ["delete_object"]
    assert s3_stub.calls[-1] == ("delete_object", {"Bucket": "test", "Key": "to-delete"})
    assert response["VersionId"] == "v-delete"
    assert ("test", "to-delete") not in s3_stub.objects


@pytest.mark.asyncio
async def test_remove_accepts_plain_mappings(s3_stub):
    storage = S3Storage(s3=s3_stub, bucket="test")

    await storage.remove_file(None, {"bucket": "elsewhere", "key": "k"})

    assert s3_stub.deleted == [("elsewhere", "k")]


@pytest.mark.asyncio
async def test_remove_forwards_store_failure(s3_stub):
    s3_stub.fail_delete = True
    storage = S3Storage(s3=s3_stub, bucket="test")

    with pytest.raises(ClientError) as excinfo:
        await storage.remove_file(None, {"bucket": "test", "key": "k"})

    assert excinfo.value.response["Error"]["Code"] == "AccessDenied"


@pytest.mark.asyncio
async def test_remove_transform_result_deletes_each_transform(s3_stub, make_file):
    def passthrough(request, file):
        return lambda chunks: chunks

    storage = S3Storage(
        s3=s3_stub,
        bucket="test",
        should_transform=True,
        transforms=[{"key": "small", "transform": passthrough}, {"key": "large", "transform": passthrough}],
    )
    stored = await storage.handle_file(None, make_file())

    responses = await storage.remove_file(None, stored)

    assert len(responses) == 2
    assert sorted(s3_stub.deleted) == [("test", "large"), ("test", "small")]
