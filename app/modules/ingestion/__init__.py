"""
Billing Ingestion Module

- DocumentIngestionService: Runs the upload pipeline (parse, normalize, summarize, persist)
- ParserFactory: Routes CSV, XLSX and PDF documents to their extractors
- NormalizationEngine: Maps line items onto OCI service categories
- CostSummaryService: Per-service and per-region totals
"""

from .domain.service import DocumentIngestionService
from .domain.parser_factory import ParserFactory
from .domain.normalization import NormalizationEngine
from .domain.cost_summary import CostSummaryService

__all__ = ["DocumentIngestionService", "ParserFactory", "NormalizationEngine", "CostSummaryService"]
