"""
Excel File Manager with Concurrency Control

Thread-safe Excel exports of the admin reports:
- Cook settlements (one row per order and cook)
- Delivery staff settlement (collected, earned, settled, still owed)

Each export rewrites its workbook under a file lock, so Celery workers
running in parallel never interleave writes.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
from filelock import FileLock, Timeout

from app.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

DATA_DIR = Path(settings.data_directory)
SETTLEMENTS_FILE = DATA_DIR / "settlements.xlsx"
DELIVERY_FILE = DATA_DIR / "delivery_settlements.xlsx"


class ExcelManager:
    """Thread-safe Excel file manager."""

    LOCK_TIMEOUT = settings.excel_lock_timeout

    SETTLEMENT_COLUMNS = [
        "settlement_id",
        "order_number",
        "cook_id",
        "kitchen_name",
        "amount",
        "status",
        "panchayat_id",
        "ward_number",
        "created_at",
        "approved_at",
        "exported_at",
    ]

    DELIVERY_COLUMNS = [
        "delivery_staff_id",
        "name",
        "mobile_number",
        "staff_type",
        "total_deliveries",
        "collected_amount",
        "job_earnings",
        "total_settled",
        "pending_settlement",
        "exported_at",
    ]

    @classmethod
    def _ensure_data_dir(cls) -> None:
        """Create data directory if needed."""
        if not DATA_DIR.exists():
            DATA_DIR.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {DATA_DIR}")

    @staticmethod
    def _lock_path(file_path: Path) -> Path:
        return file_path.with_name(file_path.name + ".lock")

    @classmethod
    def _write(cls, file_path: Path, rows: list[dict[str, Any]], columns: list[str], label: str) -> dict[str, Any]:
        """Replace ``file_path`` with ``rows`` while holding its lock."""
        cls._ensure_data_dir()

        result = {
            "success": False,
            "message": "",
            "file": str(file_path),
            "rows": len(rows),
            "exported_at": None,
        }

        try:
            lock = FileLock(str(cls._lock_path(file_path)), timeout=cls.LOCK_TIMEOUT)

            with lock:
                logger.debug(f"Lock acquired for {label} export")

                export_time = datetime.now().isoformat()
                df = pd.DataFrame(
                    [{**row, "exported_at": export_time} for row in rows],
                    columns=columns,
                )
                df.to_excel(str(file_path), index=False, engine="openpyxl")

                logger.info(f"📊 {len(rows)} {label} row(s) exported to {file_path}")

                result["success"] = True
                result["message"] = f"{len(rows)} {label} row(s) exported"
                result["exported_at"] = export_time

            logger.debug(f"Lock released for {label} export")

        except Timeout:
            result["message"] = f"Lock timeout ({cls.LOCK_TIMEOUT}s)"
            logger.error(f"Lock timeout for {label} export")

        except Exception as e:
            result["message"] = str(e)
            logger.exception(f"Error exporting {label} report")

        return result

    @classmethod
    def export_settlements(cls, rows: list[dict[str, Any]]) -> dict[str, Any]:
        """Export cook settlement rows."""
        return cls._write(SETTLEMENTS_FILE, rows, cls.SETTLEMENT_COLUMNS, "settlement")

    @classmethod
    def export_delivery_settlements(cls, rows: list[dict[str, Any]]) -> dict[str, Any]:
        """Export the per-driver settlement report."""
        return cls._write(DELIVERY_FILE, rows, cls.DELIVERY_COLUMNS, "delivery settlement")

    @classmethod
    def _read(cls, file_path: Path) -> list[dict[str, Any]]:
        if not file_path.exists():
            return []
        try:
            with FileLock(str(cls._lock_path(file_path)), timeout=cls.LOCK_TIMEOUT):
                df = pd.read_excel(file_path, engine="openpyxl")
            return df.to_dict("records")
        except Exception as e:
            logger.error(f"Error reading {file_path}: {e}")
            return []

    @classmethod
    def get_settlements(cls) -> list[dict[str, Any]]:
        return cls._read(SETTLEMENTS_FILE)

    @classmethod
    def get_delivery_settlements(cls) -> list[dict[str, Any]]:
        return cls._read(DELIVERY_FILE)

    @classmethod
    def clear_all(cls) -> bool:
        """Delete all exported workbooks."""
        try:
            for f in [SETTLEMENTS_FILE, DELIVERY_FILE]:
                for path in (f, cls._lock_path(f)):
                    if path.exists():
                        path.unlink()
            logger.info("All Excel exports cleared")
            return True
        except Exception as e:
            logger.error(f"Error clearing files: {e}")
            return False
