"""Report export: writes the markdown report of a finished run to disk."""

from __future__ import annotations

from pathlib import Path

import structlog

from geo_diagnosis.schemas.diagnosis import DiagnosisResult

logger = structlog.get_logger(__name__)


def report_filename(brand_name: str) -> str:
    """``{brandName}-geo-report.md`` with path separators replaced by ``_``."""
    safe = brand_name.strip().replace("/", "_").replace("\\", "_")
    return f"{safe}-geo-report.md"


def export_report(result: DiagnosisResult, directory: str | Path = ".") -> Path:
    """Write result.report as UTF-8 markdown and return the file path."""
    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / report_filename(result.brand_name)
    path.write_text(result.report, encoding="utf-8")
    logger.info("report_exported", path=str(path), chars=len(result.report))
    return path
