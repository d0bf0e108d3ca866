import io
import zipfile
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

import structlog
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app.schemas.billing import ExtractedRows, NormalizedLineItem
from app.shared.core.constants import CloudProvider
from app.shared.core.exceptions import DocumentReadError
from app.modules.ingestion.domain.field_resolver import RawRow
from app.modules.ingestion.domain.provider_detection import ProviderDetector
from app.modules.ingestion.domain.extractors.csv_extractor import normalize_rows

logger = structlog.get_logger()


def cell_to_string(value: Any) -> str:
    """Dates become ISO dates, numbers plain decimal strings, text is trimmed."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()[:10]
    if isinstance(value, time):
        return value.isoformat()
    return str(value)


class XlsxExtractor:
    """Reads every worksheet; row 1 of each sheet holds the headers."""

    def __init__(self, provider_detector: Optional[ProviderDetector] = None):
        self.provider_detector = provider_detector or ProviderDetector()

    def extract(self, content: bytes, file_name: str) -> ExtractedRows:
        try:
            workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
            logger.error("xlsx_open_failed", file_name=file_name, error=str(e))
            raise DocumentReadError(details={"file_name": file_name}) from e

        provider = self.provider_detector.from_file_name(file_name)
        all_rows: List[Dict[str, str]] = []

        try:
            for sheet in workbook.worksheets:
                rows = sheet.iter_rows(values_only=True)
                header_cells = next(rows, None)
                if not header_cells:
                    continue

                headers = [
                    cell_to_string(value) or f"Column{index}"
                    for index, value in enumerate(header_cells, start=1)
                ]
                if provider == CloudProvider.UNKNOWN.value:
                    provider = self.provider_detector.from_columns(headers)

                for values in rows:
                    record: Dict[str, str] = {}
                    has_any_value = False
                    for index, value in enumerate(values, start=1):
                        key = headers[index - 1] if index <= len(headers) else f"Column{index}"
                        text = cell_to_string(value)
                        record[key] = text
                        if text:
                            has_any_value = True
                    if has_any_value:
                        all_rows.append(record)
        finally:
            workbook.close()

        logger.info(
            "xlsx_extracted",
            file_name=file_name,
            sheets=len(workbook.worksheets),
            rows=len(all_rows),
            provider=provider,
        )
        return ExtractedRows(rows=all_rows, provider_detected=provider)

    def normalize_rows(self, rows: List[RawRow]) -> List[NormalizedLineItem]:
        return normalize_rows(rows)
