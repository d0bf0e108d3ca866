"""
Ingestion Persistence

Stores uploads, their raw line items and the unified billing records derived
from them. Every query is scoped to one upload id.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.billing import DocumentLineItem, DocumentUpload, UnifiedBilling
from app.models.modeling import OciCostModeling
from app.schemas.billing import NormalizedBillingRecord, NormalizedLineItem
from app.shared.core.constants import IngestionStatus, UploadStatus

logger = structlog.get_logger()


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class IngestionRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_upload(
        self,
        file_name: str,
        mime_type: str,
        size: int,
        storage_path: Optional[str] = None,
    ) -> DocumentUpload:
        upload = DocumentUpload(
            original_name=file_name,
            mime_type=mime_type or "",
            size=size,
            storage_path=storage_path,
            status=UploadStatus.PROCESSING.value,
        )
        self.db.add(upload)
        await self.db.commit()
        return upload

    async def mark_completed(
        self,
        upload: DocumentUpload,
        file_type: str,
        provider: str,
        billing_period_start: Optional[datetime],
        billing_period_end: Optional[datetime],
        invoice_period_start: Optional[datetime] = None,
        invoice_period_end: Optional[datetime] = None,
        total_tax: Optional[float] = None,
    ) -> None:
        upload.status = UploadStatus.COMPLETED.value
        upload.file_type = file_type
        upload.provider_detected = provider
        upload.billing_period_start = billing_period_start
        upload.billing_period_end = billing_period_end
        upload.invoice_billing_period_start = invoice_period_start
        upload.invoice_billing_period_end = invoice_period_end
        upload.total_tax = total_tax
        upload.error_message = None
        await self.db.commit()

    async def mark_failed(self, upload: DocumentUpload, error_message: str) -> None:
        upload_id = upload.id
        # Discards rows flushed by the failed attempt
        await self.db.rollback()
        await self.db.execute(
            update(DocumentUpload)
            .where(DocumentUpload.id == upload_id)
            .values(status=UploadStatus.FAILED.value, error_message=error_message)
        )
        await self.db.commit()

    async def insert_line_items(self, upload_id: uuid.UUID, items: Sequence[NormalizedLineItem]) -> int:
        self.db.add_all([
            DocumentLineItem(upload_id=upload_id, position=position, **item.model_dump())
            for position, item in enumerate(items)
        ])
        await self.db.flush()
        return len(items)

    async def insert_billing_records(
        self,
        upload_id: uuid.UUID,
        provider: str,
        records: Sequence[NormalizedBillingRecord],
    ) -> int:
        rows = []
        for position, record in enumerate(records):
            data = record.model_dump(exclude={"raw_line", "linked_account_id", "tax_amount", "unit_of_measure", "is_spot_instance"})
            data["source_resource_id"] = data.pop("resource_id")
            data["service_category"] = record.service_category.value
            rows.append(UnifiedBilling(
                upload_id=upload_id,
                position=position,
                provider=provider,
                ingestion_status=IngestionStatus.COMPLETED.value,
                raw_data=record.raw_line,
                **data,
            ))
        self.db.add_all(rows)
        await self.db.flush()
        return len(rows)

    async def get_upload(self, upload_id: Any) -> Optional[DocumentUpload]:
        key = _as_uuid(upload_id)
        if key is None:
            return None
        return await self.db.get(DocumentUpload, key)

    async def get_line_items(self, upload_id: uuid.UUID) -> List[DocumentLineItem]:
        result = await self.db.execute(
            select(DocumentLineItem)
            .where(DocumentLineItem.upload_id == upload_id)
            .order_by(DocumentLineItem.position)
        )
        return list(result.scalars().all())

    async def list_uploads(self, page: int = 1, limit: int = 20) -> Tuple[List[Tuple[DocumentUpload, int]], int]:
        """Newest first. Returns ((upload, item_count) pairs, total uploads)."""
        page = max(page, 1)
        limit = max(limit, 1)

        total = await self.db.scalar(select(func.count()).select_from(DocumentUpload)) or 0

        counts = (
            select(DocumentLineItem.upload_id, func.count(DocumentLineItem.id).label("item_count"))
            .group_by(DocumentLineItem.upload_id)
            .subquery()
        )
        result = await self.db.execute(
            select(DocumentUpload, func.coalesce(counts.c.item_count, 0))
            .outerjoin(counts, counts.c.upload_id == DocumentUpload.id)
            .order_by(DocumentUpload.uploaded_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return [(upload, int(count)) for upload, count in result.all()], int(total)

    async def delete_upload(self, upload_id: uuid.UUID) -> Dict[str, int]:
        """
        Deletes the upload and every row derived from it.
        Explicit deletes so SQLite without foreign key enforcement behaves like Postgres.
        """
        deleted: Dict[str, int] = {}
        for name, model in (
            ("modeling_rows", OciCostModeling),
            ("billing_records", UnifiedBilling),
            ("line_items", DocumentLineItem),
        ):
            result = await self.db.execute(delete(model).where(model.upload_id == upload_id))
            deleted[name] = result.rowcount or 0

        result = await self.db.execute(delete(DocumentUpload).where(DocumentUpload.id == upload_id))
        deleted["uploads"] = result.rowcount or 0
        await self.db.commit()

        logger.info("upload_deleted", upload_id=str(upload_id), **deleted)
        return deleted
