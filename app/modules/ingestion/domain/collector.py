"""
Billing File Collector

Pulls CSV/XLSX billing exports from the FinOps S3 bucket so they can go through
the same ingestion pipeline as uploaded files.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional

import aioboto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from app.schemas.billing import CollectedFile
from app.shared.core.config import get_settings
from app.shared.core.exceptions import ConfigurationError, ResourceNotFoundError, StorageError

logger = structlog.get_logger()

BILLING_EXTENSIONS = re.compile(r"\.(csv|xlsx)$", re.I)
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MIME = "text/csv"
EPOCH = datetime(1970, 1, 1)


@dataclass
class FetchedBillingFile:
    key: str
    bucket: str
    file_name: str
    mime_type: str
    content: bytes
    size: int
    last_modified: datetime

    @property
    def storage_path(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


def mime_type_for(file_name: str) -> str:
    return XLSX_MIME if file_name.lower().endswith(".xlsx") else CSV_MIME


class BillingCollector:
    def __init__(self):
        self.settings = get_settings()
        self.session = aioboto3.Session()

    def is_configured(self) -> bool:
        return self.settings.collector_configured

    def _client(self):
        if not self.is_configured():
            raise ConfigurationError(
                "No cloud storage backend configured. Set FINOPS_ACCESS_KEY_ID, "
                "FINOPS_SECRET_ACCESS_KEY and FINOPS_S3_BUCKET."
            )
        return self.session.client(
            "s3",
            region_name=self.settings.FINOPS_S3_REGION,
            aws_access_key_id=self.settings.FINOPS_ACCESS_KEY_ID,
            aws_secret_access_key=self.settings.FINOPS_SECRET_ACCESS_KEY,
        )

    async def list_files(self, prefix: Optional[str] = None) -> List[CollectedFile]:
        """All billing exports under the prefix (configured prefix when omitted)."""
        bucket = self.settings.FINOPS_S3_BUCKET
        prefix = prefix if prefix is not None else (self.settings.FINOPS_S3_PREFIX or "")
        files: List[CollectedFile] = []

        async with self._client() as s3:
            try:
                paginator = s3.get_paginator("list_objects_v2")
                async for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                    for obj in page.get("Contents", []):
                        key = obj.get("Key")
                        if not key or not BILLING_EXTENSIONS.search(key):
                            continue
                        files.append(CollectedFile(
                            key=key,
                            size=obj.get("Size", 0),
                            last_modified=_naive(obj.get("LastModified")),
                        ))
            except (ClientError, BotoCoreError) as e:
                logger.error("collector_list_failed", bucket=bucket, prefix=prefix, error=str(e))
                raise StorageError(f"Could not list billing files in s3://{bucket}/{prefix}") from e

        logger.info("collector_files_listed", bucket=bucket, prefix=prefix, count=len(files))
        return files

    async def fetch_latest(self, prefix: Optional[str] = None) -> FetchedBillingFile:
        files = await self.list_files(prefix)
        if not files:
            raise ResourceNotFoundError("No billing CSV or XLSX files found in the configured bucket.")

        latest = max(files, key=lambda f: f.last_modified or EPOCH)
        bucket = self.settings.FINOPS_S3_BUCKET
        logger.info(
            "collector_fetching_latest",
            key=latest.key,
            size_kb=round(latest.size / 1024, 1),
            last_modified=latest.last_modified.isoformat() if latest.last_modified else None,
        )

        async with self._client() as s3:
            try:
                obj = await s3.get_object(Bucket=bucket, Key=latest.key)
                async with obj["Body"] as stream:
                    content = await stream.read()
            except (ClientError, BotoCoreError) as e:
                logger.error("collector_download_failed", key=latest.key, error=str(e))
                raise StorageError(f"Could not download s3://{bucket}/{latest.key}") from e

        file_name = latest.key.rsplit("/", 1)[-1]
        return FetchedBillingFile(
            key=latest.key,
            bucket=bucket,
            file_name=file_name,
            mime_type=mime_type_for(file_name),
            content=content,
            size=latest.size,
            last_modified=latest.last_modified or EPOCH,
        )


def _naive(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
