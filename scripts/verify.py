"""
Excel Verification Script

Checks the settlement exports written by the export_reports_to_excel task.
Run from project root: python scripts/verify.py
"""

import os
import sys
from datetime import datetime

import pandas as pd

SETTLEMENTS_FILE = os.path.join('data', 'settlements.xlsx')
DELIVERY_FILE = os.path.join('data', 'delivery_settlements.xlsx')


def load(path: str):
    """Read one export; None when missing or unreadable."""
    if not os.path.exists(path):
        print(f"\n❌ {path} not found!")
        print("   Trigger an export first: POST /api/admin/reports/export")
        return None
    try:
        df = pd.read_excel(path, engine='openpyxl')
        print(f"\n✅ {path} loaded ({len(df)} rows)")
        return df
    except Exception as e:
        print(f"\n❌ Could not read {path}: {e}")
        return None


def missing_columns(df, required: list[str]) -> list[str]:
    missing = [col for col in required if col not in df.columns]
    if missing:
        print(f"⚠️ Missing Columns: {missing}")
    else:
        print("✅ All required columns present")
    return missing


def verify_settlements(df) -> bool:
    print("\n🍳 COOK SETTLEMENTS:")
    required = ['settlement_id', 'order_number', 'cook_id', 'amount', 'status']
    if missing_columns(df, required):
        return False

    ok = True
    duplicates = df['settlement_id'].duplicated().sum()
    if duplicates > 0:
        print(f"⚠️ {duplicates} duplicate settlement IDs found!")
        ok = False
    else:
        print("✅ No duplicate settlement IDs")

    # one settlement per cook per order
    pairs = df[['order_number', 'cook_id']].duplicated().sum()
    if pairs > 0:
        print(f"⚠️ {pairs} cooks settled twice for the same order!")
        ok = False
    else:
        print("✅ One settlement per cook per order")

    negative = (df['amount'] < 0).sum()
    if negative > 0:
        print(f"⚠️ {negative} settlements with a negative amount!")
        ok = False

    print(f"\n💰 TOTALS:")
    for status, amount in df.groupby('status')['amount'].sum().items():
        print(f"   {status}: ₹{amount:.2f}")
    print(f"   All: ₹{df['amount'].sum():.2f}")
    return ok


def verify_delivery(df) -> bool:
    print("\n🛵 DELIVERY SETTLEMENTS:")
    required = [
        'delivery_staff_id', 'name', 'collected_amount',
        'job_earnings', 'total_settled', 'pending_settlement',
    ]
    if missing_columns(df, required):
        return False

    ok = True
    expected = (df['collected_amount'] + df['job_earnings'] - df['total_settled']).round(2)
    wrong = df[expected != df['pending_settlement'].round(2)]
    if len(wrong) > 0:
        print(f"⚠️ {len(wrong)} drivers with a pending balance that does not add up:")
        print(wrong[required].to_string(index=False))
        ok = False
    else:
        print("✅ Pending balances match collected + earnings - settled")

    print(f"\n💰 TOTALS:")
    print(f"   Collected: ₹{df['collected_amount'].sum():.2f}")
    print(f"   Earnings: ₹{df['job_earnings'].sum():.2f}")
    print(f"   Pending: ₹{df['pending_settlement'].sum():.2f}")

    if len(df) > 0:
        print(f"\n📋 TOP PENDING:")
        print("-" * 60)
        cols = ['name', 'total_deliveries', 'pending_settlement']
        print(df.sort_values('pending_settlement', ascending=False)[cols].head(5).to_string(index=False))
    return ok


def verify_excel() -> bool:
    """Verify both export files."""

    print("=" * 60)
    print("🔍 EXCEL VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 60)

    settlements = load(SETTLEMENTS_FILE)
    delivery = load(DELIVERY_FILE)
    if settlements is None or delivery is None:
        return False

    ok = verify_settlements(settlements)
    ok = verify_delivery(delivery) and ok

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE" if ok else "❌ VERIFICATION FOUND PROBLEMS")
    print("=" * 60)
    return ok


if __name__ == "__main__":
    sys.exit(0 if verify_excel() else 1)
