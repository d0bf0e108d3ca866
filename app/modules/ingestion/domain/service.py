"""
Document Ingestion Service

Orchestrates the pipeline for one billing document:
detect -> extract -> normalize -> summarize -> persist.

Any failure after the upload row exists marks the upload as failed with a
sanitized, user-safe message.
"""

from typing import List, Optional, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.billing import DocumentUpload
from app.schemas.billing import (
    BillingPeriod,
    CollectedFile,
    DocumentUploadResult,
    NormalizedLineItem,
    ParserResult,
    UploadList,
    UploadListEntry,
)
from app.shared.core.config import get_settings
from app.shared.core.constants import CloudProvider, PdfExtractor
from app.shared.core.exceptions import (
    CloudshiftException,
    DocumentReadError,
    EmptyUploadError,
    FileTooLargeError,
    ResourceNotFoundError,
    sanitize_ingestion_error,
)
from app.modules.ingestion.domain.collector import BillingCollector
from app.modules.ingestion.domain.cost_summary import CostSummaryService
from app.modules.ingestion.domain.normalization import NormalizationEngine
from app.modules.ingestion.domain.parser_factory import ParserFactory
from app.modules.ingestion.domain.persistence import IngestionRepository

logger = structlog.get_logger()


def _billing_period(parsed: ParserResult, start, end) -> BillingPeriod:
    """Invoice header period when the document has one, else the line item range."""
    invoice = parsed.invoice_billing_period
    if invoice is not None and (invoice.start or invoice.end):
        return BillingPeriod(start=invoice.start, end=invoice.end)
    return BillingPeriod(start=start, end=end)


class DocumentIngestionService:
    def __init__(
        self,
        db: AsyncSession,
        parser_factory: Optional[ParserFactory] = None,
        normalization: Optional[NormalizationEngine] = None,
        cost_summary: Optional[CostSummaryService] = None,
        collector: Optional[BillingCollector] = None,
    ):
        self.settings = get_settings()
        self.repository = IngestionRepository(db)
        self.parser_factory = parser_factory or ParserFactory()
        self.normalization = normalization or NormalizationEngine()
        self.cost_summary = cost_summary or CostSummaryService()
        self.collector = collector or BillingCollector()

    async def process_file(
        self,
        content: bytes,
        file_name: str,
        mime_type: str = "",
        provider_hint: Optional[str] = None,
        extractor: Union[PdfExtractor, str] = PdfExtractor.AUTO,
        storage_path: Optional[str] = None,
    ) -> DocumentUploadResult:
        if not content:
            raise EmptyUploadError()
        if len(content) > self.settings.MAX_UPLOAD_BYTES:
            limit_mb = self.settings.MAX_UPLOAD_BYTES // (1024 * 1024)
            raise FileTooLargeError(
                f"File exceeds the {limit_mb} MB upload limit",
                details={"size": len(content), "limit": self.settings.MAX_UPLOAD_BYTES},
            )
        extractor = PdfExtractor(extractor)
        # Raises UnsupportedFileError before any row is written
        self.parser_factory.detect_file_type(content, file_name, mime_type)

        upload = await self.repository.create_upload(file_name, mime_type, len(content), storage_path)
        log = logger.bind(upload_id=str(upload.id), file_name=file_name)
        log.info("ingestion_started", size=len(content), extractor=extractor.value)

        try:
            parsed = await self.parser_factory.parse(
                content, file_name, mime_type, provider_hint=provider_hint, extractor=extractor
            )
            provider = parsed.provider_detected or CloudProvider.UNKNOWN.value
            records = self.normalization.normalize_all(parsed.line_items, provider)
            summary = self.cost_summary.build(parsed.line_items, total_tax=parsed.total_tax)

            await self.repository.insert_line_items(upload.id, parsed.line_items)
            await self.repository.insert_billing_records(upload.id, provider, records)

            invoice_period = parsed.invoice_billing_period or BillingPeriod()
            await self.repository.mark_completed(
                upload,
                file_type=parsed.file_type.value,
                provider=provider,
                billing_period_start=summary.billing_period_start,
                billing_period_end=summary.billing_period_end,
                invoice_period_start=invoice_period.start,
                invoice_period_end=invoice_period.end,
                total_tax=parsed.total_tax,
            )
        except Exception as e:
            message = sanitize_ingestion_error(e)
            log.error("ingestion_failed", error=str(e), error_type=type(e).__name__)
            await self.repository.mark_failed(upload, message)
            if isinstance(e, CloudshiftException):
                raise
            raise DocumentReadError(message) from e

        log.info(
            "ingestion_complete",
            provider=provider,
            file_type=parsed.file_type.value,
            line_items=len(parsed.line_items),
            subtotal=summary.subtotal,
        )

        return DocumentUploadResult(
            upload_id=str(upload.id),
            file_name=file_name,
            file_type=parsed.file_type.value,
            cloud_provider_detected=provider,
            billing_period=_billing_period(parsed, summary.billing_period_start, summary.billing_period_end),
            total_tax=summary.total_tax,
            line_items=parsed.line_items,
            cost_summary=summary,
        )

    async def process_from_collector(
        self,
        prefix: Optional[str] = None,
        provider_hint: Optional[str] = None,
        dry_run: bool = False,
    ) -> Union[List[CollectedFile], DocumentUploadResult]:
        """Dry run lists the candidate files. Otherwise ingests the most recent one."""
        if dry_run:
            files = await self.collector.list_files(prefix)
            logger.info("collector_dry_run", prefix=prefix, files=len(files))
            return files

        fetched = await self.collector.fetch_latest(prefix)
        logger.info("collector_file_fetched", key=fetched.key, size=fetched.size)
        return await self.process_file(
            fetched.content,
            fetched.file_name,
            fetched.mime_type,
            provider_hint=provider_hint,
            storage_path=fetched.storage_path,
        )

    async def list_uploads(self, page: int = 1, limit: int = 20) -> UploadList:
        page = max(page, 1)
        limit = max(min(limit, 100), 1)
        rows, total = await self.repository.list_uploads(page, limit)
        return UploadList(
            uploads=[self._list_entry(upload, count) for upload, count in rows],
            total=total,
            page=page,
            limit=limit,
        )

    async def get_by_upload_id(self, upload_id: str) -> DocumentUploadResult:
        upload = await self._require_upload(upload_id)
        stored = await self.repository.get_line_items(upload.id)
        line_items = [NormalizedLineItem.model_validate(row, from_attributes=True) for row in stored]
        summary = self.cost_summary.build(line_items, total_tax=upload.total_tax)

        if upload.invoice_billing_period_start or upload.invoice_billing_period_end:
            period = BillingPeriod(start=upload.invoice_billing_period_start, end=upload.invoice_billing_period_end)
        else:
            period = BillingPeriod(start=upload.billing_period_start, end=upload.billing_period_end)

        return DocumentUploadResult(
            upload_id=str(upload.id),
            file_name=upload.original_name,
            file_type=upload.file_type or "",
            cloud_provider_detected=upload.provider_detected,
            billing_period=period,
            total_tax=summary.total_tax,
            line_items=line_items,
            cost_summary=summary,
        )

    async def delete_upload(self, upload_id: str) -> None:
        upload = await self._require_upload(upload_id)
        await self.repository.delete_upload(upload.id)

    async def _require_upload(self, upload_id: str) -> DocumentUpload:
        upload = await self.repository.get_upload(upload_id)
        if upload is None:
            raise ResourceNotFoundError(f"Upload {upload_id} not found", details={"upload_id": str(upload_id)})
        return upload

    @staticmethod
    def _list_entry(upload: DocumentUpload, item_count: int) -> UploadListEntry:
        return UploadListEntry(
            upload_id=str(upload.id),
            file_name=upload.original_name,
            file_type=upload.file_type or "",
            cloud_provider_detected=upload.provider_detected,
            status=upload.status,
            error_message=upload.error_message,
            item_count=item_count,
            billing_period=BillingPeriod(start=upload.billing_period_start, end=upload.billing_period_end),
            uploaded_at=upload.uploaded_at,
        )
