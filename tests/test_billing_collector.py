from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from app.modules.ingestion.domain.collector import XLSX_MIME, BillingCollector, mime_type_for
from app.shared.core.config import get_settings
from app.shared.core.exceptions import ConfigurationError, ResourceNotFoundError, StorageError

PAGES = [
    {"Contents": [
        {"Key": "exports/2025-01/cur.csv", "Size": 2048, "LastModified": datetime(2025, 2, 1, tzinfo=timezone.utc)},
        {"Key": "exports/2025-01/manifest.json", "Size": 10, "LastModified": datetime(2025, 2, 3, tzinfo=timezone.utc)},
    ]},
    {"Contents": [
        {"Key": "exports/2025-02/cur.xlsx", "Size": 4096, "LastModified": datetime(2025, 3, 1, tzinfo=timezone.utc)},
    ]},
    {},
]


def _configured_settings():
    return get_settings().model_copy(update={
        "FINOPS_ACCESS_KEY_ID": "AKIATEST",
        "FINOPS_SECRET_ACCESS_KEY": "secret",
        "FINOPS_S3_BUCKET": "finops",
        "FINOPS_S3_PREFIX": "exports/",
    })


def _s3_client(pages=PAGES, body=b"a,b\n1,2\n"):
    async def paginate(**kwargs):
        for page in pages:
            yield page

    paginator = MagicMock()
    paginator.paginate = MagicMock(side_effect=paginate)

    stream = MagicMock()
    stream.read = AsyncMock(return_value=body)
    body_cm = MagicMock()
    body_cm.__aenter__.return_value = stream

    client = AsyncMock()
    client.get_paginator = MagicMock(return_value=paginator)
    client.get_object.return_value = {"Body": body_cm}
    return client, paginator


def test_mime_type_for():
    assert mime_type_for("CUR.XLSX") == XLSX_MIME
    assert mime_type_for("cur.csv") == "text/csv"


@pytest.mark.asyncio
async def test_not_configured():
    with pytest.raises(ConfigurationError):
        await BillingCollector().list_files()


@pytest.mark.asyncio
async def test_list_files_filters_extensions():
    client, paginator = _s3_client()

    with patch("aioboto3.Session") as MockSession:
        MockSession.return_value.client.return_value.__aenter__.return_value = client
        collector = BillingCollector()
        collector.settings = _configured_settings()
        files = await collector.list_files()

    assert [f.key for f in files] == ["exports/2025-01/cur.csv", "exports/2025-02/cur.xlsx"]
    assert files[0].last_modified == datetime(2025, 2, 1)
    paginator.paginate.assert_called_once_with(Bucket="finops", Prefix="exports/")


@pytest.mark.asyncio
async def test_fetch_latest():
    client, _ = _s3_client(body=b"xlsx-bytes")

    with patch("aioboto3.Session") as MockSession:
        MockSession.return_value.client.return_value.__aenter__.return_value = client
        collector = BillingCollector()
        collector.settings = _configured_settings()
        fetched = await collector.fetch_latest()

    client.get_object.assert_awaited_once_with(Bucket="finops", Key="exports/2025-02/cur.xlsx")
    assert fetched.file_name == "cur.xlsx"
    assert fetched.mime_type == XLSX_MIME
    assert fetched.content == b"xlsx-bytes"
    assert fetched.storage_path == "s3://finops/exports/2025-02/cur.xlsx"


@pytest.mark.asyncio
async def test_fetch_latest_with_empty_bucket():
    client, _ = _s3_client(pages=[{}])

    with patch("aioboto3.Session") as MockSession:
        MockSession.return_value.client.return_value.__aenter__.return_value = client
        collector = BillingCollector()
        collector.settings = _configured_settings()
        with pytest.raises(ResourceNotFoundError):
            await collector.fetch_latest("empty/")


@pytest.mark.asyncio
async def test_list_failure_becomes_storage_error():
    client, paginator = _s3_client()
    paginator.paginate = MagicMock(side_effect=ClientError(
        {"Error": {"Code": "NoSuchBucket", "Message": "The specified bucket does not exist"}},
        "ListObjectsV2",
    ))

    with patch("aioboto3.Session") as MockSession:
        MockSession.return_value.client.return_value.__aenter__.return_value = client
        collector = BillingCollector()
        collector.settings = _configured_settings()
        with pytest.raises(StorageError):
            await collector.list_files()
