from __future__ import annotations

import re

import pytest

from s3_stream_storage import S3Storage, s3_storage
from s3_stream_storage.core.errors import ConfigurationError
from s3_stream_storage.storage.models import TransformSpec
from s3_stream_storage.storage.resolvers import (
    DEFAULT_KEY,
    Computed,
    StaticValue,
    as_resolver,
)

INVALID_OPTIONS = [
    ("numeric key", {"key": 1337}),
    ("numeric bucket", {"bucket": 1337}),
    ("numeric content_type", {"content_type": 1337}),
    ("boolean acl", {"acl": True}),
    ("string should_transform", {"should_transform": "yes"}),
    ("list metadata", {"metadata": ["a"]}),
    ("transforms not a list", {"transforms": "thumbnail"}),
    ("non-callable transform", {"transforms": [{"id": "thumb", "transform": "resize"}]}),
    ("numeric transform key", {"transforms": [{"key": 7, "transform": lambda req, file: None}]}),
    ("string rollback flag", {"rollback_on_failure": "yes"}),
]


@pytest.mark.parametrize("case,options", INVALID_OPTIONS, ids=[case for case, _ in INVALID_OPTIONS])
def test_invalid_options_raise_configuration_error(s3_stub, case, options):
    with pytest.raises(ConfigurationError):
        s3_storage(**{"s3": s3_stub, "bucket": "string", **options})


def test_configuration_error_is_a_type_error(s3_stub):
    with pytest.raises(TypeError):
        s3_storage(s3=s3_stub, bucket=1337)


def test_missing_bucket_is_rejected(s3_stub):
    with pytest.raises(ConfigurationError, match="bucket is required"):
        S3Storage(s3=s3_stub)


def test_missing_s3_client_is_rejected():
    with pytest.raises(ConfigurationError, match="s3"):
        S3Storage(bucket="test")


def test_literal_options_become_static_resolvers(s3_stub):
    storage = S3Storage(s3=s3_stub, bucket="test", key="fixed-key", acl="public-read", should_transform=True)

    assert isinstance(storage.get_bucket, StaticValue)
    assert storage.get_key.value == "fixed-key"
    assert storage.get_acl.value == "public-read"
    assert storage.get_should_transform.value is True


def test_defaults_are_shared_between_instances(s3_stub):
    first = S3Storage(s3=s3_stub, bucket="a")
    second = S3Storage(s3=s3_stub, bucket="b")

    assert first.get_key is DEFAULT_KEY
    assert first.get_acl is second.get_acl
    assert first.get_storage_class is second.get_storage_class
    assert first.transforms == ()


@pytest.mark.asyncio
async def test_default_key_is_random_hex():
    keys = {await DEFAULT_KEY.resolve(None, None) for _ in range(50)}

    assert len(keys) == 50
    for key in keys:
        assert re.fullmatch(r"[0-9a-f]{32}", key)


@pytest.mark.asyncio
async def test_computed_accepts_sync_and_async_callables():
    def sync_bucket(request, file):
        return f"{request}-sync"

    async def async_bucket(request, file):
        return f"{request}-async"

    assert await Computed(sync_bucket).resolve("req", None) == "req-sync"
    assert await Computed(async_bucket).resolve("req", None) == "req-async"


@pytest.mark.asyncio
async def test_metadata_literal_is_copied_per_upload():
    resolver = as_resolver("metadata", {"owner": "alice"}, StaticValue(None), literal_types=(dict,))

    first = await resolver.resolve(None, None)
    first["owner"] = "mallory"

    assert await resolver.resolve(None, None) == {"owner": "alice"}


def test_transform_specs_default_id_and_key(s3_stub):
    def resize(request, file):
        return lambda chunks: chunks

    storage = S3Storage(
        s3=s3_stub,
        bucket="test",
        transforms=[
            {"transform": resize},
            {"id": "thumb", "key": "thumb.png", "transform": resize},
            TransformSpec(id="", key=None, transform=resize),
        ],
    )

    ids = [transform.id for transform in storage.transforms]
    assert ids == [0, "thumb", 2]
    assert storage.transforms[0].key is DEFAULT_KEY
    assert storage.transforms[1].key.value == "thumb.png"
    assert storage.transforms[2].key is DEFAULT_KEY
