"""
Revenue Export Verification Script

Compares the Excel revenue export with the ledger in the database.
Run from project root: python scripts/verify.py

Author: Tableside Team
Version: 1.0.0
"""

import asyncio
import sys
from datetime import datetime
from decimal import Decimal

import pandas as pd

from tableside.core.config import get_settings
from tableside.database import async_session_maker, engine
from tableside.store.sql import SqlStore

REQUIRED_COLUMNS = ["account_id", "amount", "payment_method", "paid_at"]


async def load_ledger() -> list:
    try:
        return await SqlStore(async_session_maker).list_revenue()
    finally:
        await engine.dispose()


def verify_export() -> bool:
    """Verify the revenue workbook against the ledger."""
    excel_file = get_settings().revenue_excel_path

    print("=" * 60)
    print("REVENUE EXPORT VERIFICATION REPORT")
    print("=" * 60)
    print(f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"File: {excel_file}")
    print("=" * 60)

    if not excel_file.exists():
        print("\nExcel file not found!")
        print("   Set REVENUE_EXPORT_ENABLED=true and run: python scripts/simulate.py")
        return False

    try:
        df = pd.read_excel(excel_file, engine="openpyxl")
        print("\nFile loaded successfully")
    except Exception as e:
        print(f"\nCould not read Excel file: {e}")
        return False

    print(f"\nRows: {len(df)}  Columns: {len(df.columns)}")

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        print(f"\nMissing columns: {missing}")
        return False

    ok = True
    duplicates = df["account_id"].duplicated().sum()
    if duplicates > 0:
        print(f"\n{duplicates} duplicate account ids found!")
        ok = False
    else:
        print("No duplicate account ids")

    ledger = asyncio.run(load_ledger())
    ledger_ids = {entry.account_id for entry in ledger}
    exported_ids = set(int(a) for a in df["account_id"].tolist())

    not_exported = sorted(ledger_ids - exported_ids)
    if not_exported:
        print(f"\nLedger entries not exported: {not_exported}")
        ok = False

    ledger_total = sum((entry.amount for entry in ledger), Decimal("0"))
    export_total = Decimal(str(round(df["amount"].sum(), 2)))
    print("\nREVENUE:")
    print(f"   Ledger total: {ledger_total:.2f}")
    print(f"   Export total: {export_total:.2f}")

    print("\nRECENT ENTRIES:")
    print("-" * 60)
    print(df[REQUIRED_COLUMNS].tail(5).to_string(index=False))

    print("\n" + "=" * 60)
    print("VERIFICATION COMPLETE" if ok else "VERIFICATION FOUND PROBLEMS")
    print("=" * 60)
    return ok


if __name__ == "__main__":
    sys.exit(0 if verify_export() else 1)
