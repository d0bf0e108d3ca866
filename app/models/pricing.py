import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import String, DateTime, Numeric, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.db.base import Base


class OciPriceCache(Base):
    """
    Locally cached OCI list prices.
    Consulted before the live Oracle price list so modeling can run offline.
    """
    __tablename__ = "oci_price_cache"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    part_number: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    sku_name: Mapped[Optional[str]] = mapped_column(String(255))
    metric_name: Mapped[Optional[str]] = mapped_column(String(100))
    service_category: Mapped[Optional[str]] = mapped_column(String(100))
    model: Mapped[str] = mapped_column(String(32), default="PAY_AS_YOU_GO")
    unit_price: Mapped[float] = mapped_column(Numeric(18, 8, asdecimal=False), nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    __table_args__ = (
        UniqueConstraint("part_number", "currency_code", name="uix_oci_price_part_currency"),
    )
