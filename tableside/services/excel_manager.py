"""
Excel Revenue Export with Concurrency Control

Appends revenue ledger entries to an Excel workbook. Several Celery
workers may export at the same time, so every read-modify-write of the
workbook happens under a file lock.

Author: Tableside Team
Version: 1.0.0
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import pandas as pd
from filelock import FileLock, Timeout

from tableside.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class ExcelManager:
    """
    Process-safe revenue workbook manager.

    Attributes:
        file_path: Workbook location
        lock_timeout: Seconds to wait for the workbook lock

    Example:
        >>> manager = ExcelManager.from_settings()
        >>> manager.export_revenue({"account_id": 7, "amount": "60.00", ...})
    """

    REVENUE_COLUMNS = [
        "entry_id",
        "account_id",
        "table_number",
        "amount",
        "payment_method",
        "paid_at",
        "exported_at",
    ]

    def __init__(self, file_path, lock_timeout: int = 30):
        self.file_path = Path(file_path)
        self.lock_path = Path(f"{self.file_path}.lock")
        self.lock_timeout = lock_timeout

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ExcelManager":
        settings = settings or get_settings()
        return cls(settings.revenue_excel_path, lock_timeout=settings.excel_lock_timeout)

    def _ensure_data_dir(self) -> None:
        data_dir = self.file_path.parent
        if not data_dir.exists():
            data_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {data_dir}")

    def _load_or_create_df(self) -> pd.DataFrame:
        """Load the existing workbook or start a new DataFrame."""
        if self.file_path.exists():
            try:
                return pd.read_excel(self.file_path, engine="openpyxl")
            except Exception as e:
                logger.warning(f"Error reading {self.file_path}: {e}")
        return pd.DataFrame(columns=self.REVENUE_COLUMNS)

    def export_revenue(self, entry: dict[str, Any]) -> dict[str, Any]:
        """
        Append one revenue entry under the workbook lock.

        Entries already present (same account_id) are not appended twice,
        so a retried task is harmless. Workbook I/O errors (OSError) are
        raised so the Celery task can retry; a lock timeout is not.

        Returns:
            dict with success, message, account_id and exported_at
        """
        self._ensure_data_dir()

        account_id = entry.get("account_id")
        result = {
            "success": False,
            "message": "",
            "account_id": account_id,
            "exported_at": None,
        }

        try:
            with FileLock(str(self.lock_path), timeout=self.lock_timeout):
                logger.debug(f"Lock acquired for account #{account_id}")

                df = self._load_or_create_df()
                if not df.empty and account_id in set(df["account_id"].tolist()):
                    result["success"] = True
                    result["message"] = f"Account #{account_id} already exported"
                    return result

                export_time = datetime.now().isoformat()
                new_row = {
                    "entry_id": entry.get("id"),
                    "account_id": account_id,
                    "table_number": entry.get("table_number"),
                    "amount": float(entry.get("amount", 0)),
                    "payment_method": entry.get("payment_method"),
                    "paid_at": entry.get("paid_at"),
                    "exported_at": export_time,
                }

                if df.empty:
                    df = pd.DataFrame([new_row], columns=self.REVENUE_COLUMNS)
                else:
                    df = pd.concat([df, pd.DataFrame([new_row])], ignore_index=True)
                df.to_excel(str(self.file_path), index=False, engine="openpyxl")

                logger.info(f"Revenue of account #{account_id} exported to Excel")

                result["success"] = True
                result["message"] = f"Account #{account_id} exported"
                result["exported_at"] = export_time

        except Timeout:
            result["message"] = f"Lock timeout ({self.lock_timeout}s)"
            logger.error(f"Lock timeout for account #{account_id}")

        except OSError as e:
            logger.error(f"Workbook I/O failed for account #{account_id}: {e}")
            raise

        except Exception as e:
            result["message"] = str(e)
            logger.exception(f"Error exporting account #{account_id}")

        return result

    def get_all_revenue(self) -> list[dict[str, Any]]:
        if not self.file_path.exists():
            return []

        try:
            df = pd.read_excel(self.file_path, engine="openpyxl")
            return df.to_dict("records")
        except Exception as e:
            logger.error(f"Error reading revenue export: {e}")
            return []

    def clear(self) -> bool:
        """Delete the workbook and its lock file."""
        try:
            for f in [self.file_path, self.lock_path]:
                if f.exists():
                    f.unlink()
            logger.info("Revenue export cleared")
            return True
        except OSError as e:
            logger.error(f"Error clearing revenue export: {e}")
            return False
