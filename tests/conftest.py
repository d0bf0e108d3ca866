import os
# Settings are read at import time: configure the test environment BEFORE any app imports
os.environ["ENVIRONMENT"] = "development"
os.environ["TESTING"] = "True"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
for _var in (
    "TEXTRACT_ACCESS_KEY_ID", "TEXTRACT_SECRET_ACCESS_KEY", "TEXTRACT_REGION",
    "GEMINI_API_KEY", "FINOPS_ACCESS_KEY_ID", "FINOPS_SECRET_ACCESS_KEY", "FINOPS_S3_BUCKET",
):
    os.environ.pop(_var, None)

import pytest
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Ensure all models are registered in the metadata
from app.shared.db.base import Base
from app.models.billing import DocumentUpload, DocumentLineItem, UnifiedBilling  # noqa: F401
from app.models.modeling import OciCostModeling  # noqa: F401
from app.models.pricing import OciPriceCache  # noqa: F401
from app.modules.modeling.domain.pricing import clear_price_memo


@pytest.fixture(autouse=True)
def reset_price_memo():
    """The live price memo is process-wide; keep tests independent."""
    clear_price_memo()
    yield
    clear_price_memo()


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory SQLite database per test."""
    # StaticPool keeps the single in-memory database alive across connections
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await test_engine.dispose()


@pytest.fixture
def aws_cur_csv() -> bytes:
    """Three-row AWS Cost and Usage Report export."""
    return (
        "lineItem/UsageAccountId,lineItem/ProductCode,lineItem/UsageType,product/ProductName,"
        "lineItem/UsageStartDate,lineItem/UsageEndDate,lineItem/UsageAmount,lineItem/UnblendedCost,"
        "lineItem/CurrencyCode,product/region\n"
        "123456789012,AmazonEC2,BoxUsage:m5.xlarge,Amazon Elastic Compute Cloud,"
        "2025-01-01T00:00:00Z,2025-01-31T23:59:59Z,100,50,USD,us-east-1\n"
        "123456789012,AmazonS3,TimedStorage-ByteHrs,Amazon Simple Storage Service,"
        "2025-01-01T00:00:00Z,2025-01-31T23:59:59Z,500,11.5,USD,us-east-1\n"
        "123456789012,AWSDataTransfer,DataTransfer-Out-Bytes,AWS Data Transfer,"
        "2025-01-01T00:00:00Z,2025-01-31T23:59:59Z,5000,45,USD,us-west-2\n"
    ).encode("utf-8")
