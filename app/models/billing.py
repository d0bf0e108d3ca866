import uuid
from datetime import datetime
from sqlalchemy import String, Integer, Boolean, Numeric, DateTime, ForeignKey, Index, JSON, Uuid, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import JSONB

from app.shared.db.base import Base
from app.shared.core.constants import IngestionStatus, ServiceCategory, UploadStatus

# Money columns are DECIMAL in Postgres but read back as float
Money = Numeric(18, 8, asdecimal=False)


class DocumentUpload(Base):
    __tablename__ = "document_uploads"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    original_name: Mapped[str] = mapped_column(String, nullable=False)
    mime_type: Mapped[str] = mapped_column(String, nullable=False, default="")
    file_type: Mapped[str | None] = mapped_column(String(8), nullable=True)
    size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    storage_path: Mapped[str | None] = mapped_column(String, nullable=True)  # s3://bucket/key for collected files

    provider_detected: Mapped[str] = mapped_column(String(16), nullable=False, default="unknown")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=UploadStatus.PROCESSING.value, index=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Derived from line item usage dates
    billing_period_start: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    billing_period_end: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Read from the invoice header (PDF backends only)
    invoice_billing_period_start: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    invoice_billing_period_end: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    total_tax: Mapped[float | None] = mapped_column(Money, nullable=True)

    uploaded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    line_items: Mapped[list["DocumentLineItem"]] = relationship(
        back_populates="upload", cascade="all, delete-orphan", passive_deletes=True
    )


class DocumentLineItem(Base):
    """A NormalizedLineItem exactly as extracted, before category mapping."""
    __tablename__ = "document_line_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    upload_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("document_uploads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    invoice_id: Mapped[str | None] = mapped_column(String, nullable=True)
    linked_account_id: Mapped[str | None] = mapped_column(String, nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String, nullable=True)
    product_code: Mapped[str | None] = mapped_column(String, nullable=True)
    product_name: Mapped[str | None] = mapped_column(String, nullable=True)
    service_category: Mapped[str | None] = mapped_column(String, nullable=True)
    usage_start_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    usage_end_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    usage_quantity: Mapped[float | None] = mapped_column(Money, nullable=True)
    unit_price: Mapped[float | None] = mapped_column(Money, nullable=True)
    unit_of_measure: Mapped[str | None] = mapped_column(String, nullable=True)
    cost_before_tax: Mapped[float | None] = mapped_column(Money, nullable=True)
    tax_amount: Mapped[float | None] = mapped_column(Money, nullable=True)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    region_name: Mapped[str | None] = mapped_column(String, nullable=True)
    is_spot_instance: Mapped[bool] = mapped_column(Boolean, default=False)
    raw_line: Mapped[dict | None] = mapped_column(JSON().with_variant(JSONB, "postgresql"), nullable=True)

    upload: Mapped["DocumentUpload"] = relationship(back_populates="line_items")


class UnifiedBilling(Base):
    """Canonical billing record consumed by lift-and-shift modeling."""
    __tablename__ = "unified_billing"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    upload_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("document_uploads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    provider: Mapped[str] = mapped_column(String(16), nullable=False, default="unknown", index=True)

    source_resource_id: Mapped[str | None] = mapped_column(String, nullable=True)
    invoice_id: Mapped[str | None] = mapped_column(String, nullable=True)
    product_code: Mapped[str | None] = mapped_column(String, nullable=True)
    product_name: Mapped[str | None] = mapped_column(String, nullable=True)

    usage_quantity: Mapped[float | None] = mapped_column(Money, nullable=True)
    # x86 Compute: usage_quantity / 2. Everything else: usage_quantity
    oci_equivalent_quantity: Mapped[float | None] = mapped_column(Money, nullable=True)
    service_category: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ServiceCategory.OTHER.value, index=True
    )
    unit_price: Mapped[float | None] = mapped_column(Numeric(24, 10, asdecimal=False), nullable=True)

    is_paid_sku: Mapped[bool] = mapped_column(Boolean, default=True)
    is_generative_ai: Mapped[bool] = mapped_column(Boolean, default=False)
    is_windows_licensed: Mapped[bool] = mapped_column(Boolean, default=False)
    windows_sku_code: Mapped[str | None] = mapped_column(String(16), nullable=True)

    cost_before_tax: Mapped[float | None] = mapped_column(Money, nullable=True)
    brl_tax_amount: Mapped[float | None] = mapped_column(Money, nullable=True)
    cost_after_tax: Mapped[float | None] = mapped_column(Money, nullable=True)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    region_name: Mapped[str | None] = mapped_column(String, nullable=True)
    usage_start_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    usage_end_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    ingestion_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=IngestionStatus.COMPLETED.value, index=True
    )
    raw_data: Mapped[dict | None] = mapped_column(JSON().with_variant(JSONB, "postgresql"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_unified_billing_upload_provider", "upload_id", "provider"),
        Index("ix_unified_billing_category_genai", "service_category", "is_generative_ai"),
        Index("ix_unified_billing_usage_window", "usage_start_date", "usage_end_date"),
    )
