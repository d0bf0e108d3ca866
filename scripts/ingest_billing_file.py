import asyncio
import argparse
import sys
import os

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app.shared.core.logging import setup_logging
from app.shared.db.session import async_session_maker, engine, init_db
from app.modules.ingestion import DocumentIngestionService
from app.modules.modeling import LiftAndShiftModeler


async def ingest(path: str, provider: str | None, extractor: str, currency: str, model: bool):
    """Run one local billing file through ingestion and, optionally, lift-and-shift modeling."""
    setup_logging()
    await init_db()

    with open(path, "rb") as f:
        content = f.read()

    async with async_session_maker() as db:
        service = DocumentIngestionService(db)
        result = await service.process_file(
            content,
            os.path.basename(path),
            provider_hint=provider,
            extractor=extractor,
        )
        print(result.model_dump_json(indent=2, exclude={"line_items"}))

        if model:
            modeling = await LiftAndShiftModeler(db).model(result.upload_id, currency)
            print(modeling.summary.model_dump_json(indent=2))

    await engine.dispose()


async def collect(prefix: str | None, provider: str | None, dry_run: bool):
    setup_logging()
    await init_db()

    async with async_session_maker() as db:
        result = await DocumentIngestionService(db).process_from_collector(prefix, provider, dry_run=dry_run)
        if dry_run:
            for f in result:
                print(f"  {f.key}  {f.size} bytes  {f.last_modified}")
        else:
            print(result.model_dump_json(indent=2, exclude={"line_items"}))

    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Ingest a billing export or invoice")
    parser.add_argument("path", nargs="?", help="Local CSV, XLSX or PDF file")
    parser.add_argument("--provider", help="Override provider detection (aws, azure, gcp, oci)")
    parser.add_argument("--extractor", default="auto", choices=["auto", "textract", "gemini"])
    parser.add_argument("--currency", default="USD")
    parser.add_argument("--model", action="store_true", help="Run lift-and-shift modeling afterwards")
    parser.add_argument("--collect", action="store_true", help="Fetch the latest file from the FinOps bucket")
    parser.add_argument("--prefix")
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()

    if args.collect:
        asyncio.run(collect(args.prefix, args.provider, args.dry_run))
    elif args.path:
        asyncio.run(ingest(args.path, args.provider, args.extractor, args.currency, args.model))
    else:
        parser.error("a file path or --collect is required")
