import uuid
from datetime import datetime
from sqlalchemy import String, Integer, Boolean, Numeric, DateTime, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.db.base import Base

Money = Numeric(18, 8, asdecimal=False)


class OciCostModeling(Base):
    """One lift-and-shift comparison row per unified billing record."""
    __tablename__ = "oci_cost_modeling"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    upload_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("document_uploads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    billing_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    source_provider: Mapped[str | None] = mapped_column(String(16), nullable=True)
    source_service: Mapped[str | None] = mapped_column(String, nullable=True)
    service_category: Mapped[str | None] = mapped_column(String(16), nullable=True)
    source_cost: Mapped[float | None] = mapped_column(Money, nullable=True)
    source_currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    oci_sku_part_number: Mapped[str | None] = mapped_column(String(16), nullable=True)
    oci_sku_name: Mapped[str | None] = mapped_column(String, nullable=True)
    oci_equivalent_quantity: Mapped[float | None] = mapped_column(Money, nullable=True)
    oci_unit: Mapped[str | None] = mapped_column(String, nullable=True)
    oci_unit_price: Mapped[float | None] = mapped_column(Money, nullable=True)
    oci_estimated_cost: Mapped[float | None] = mapped_column(Money, nullable=True)
    savings_amount: Mapped[float | None] = mapped_column(Money, nullable=True)
    savings_pct: Mapped[float | None] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=True)

    is_spot_converted: Mapped[bool] = mapped_column(Boolean, default=False)
    has_windows_license: Mapped[bool] = mapped_column(Boolean, default=False)
    windows_license_cost: Mapped[float | None] = mapped_column(Money, nullable=True)
    pricing_method: Mapped[str | None] = mapped_column(String(16), nullable=True)  # quantity, ratio
    pricing_formula: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_oci_cost_modeling_upload_category", "upload_id", "service_category"),
    )
