#!/usr/bin/env python3
"""Database overview and stock/return integrity checks for RentalManagement."""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine


EXPECTED_TABLES = [
    "Categories",
    "Products",
    "Orders",
    "RentalLines",
    "ReturnEvents",
    "AuditLogs",
]

EXPECTED_COLUMNS: dict[str, list[str]] = {
    "Products": ["ProductID", "ProductName", "PerDayPrice", "CategoryID", "CategoryName", "Stock"],
    "Orders": [
        "OrderID",
        "OrderNumber",
        "IdempotencyKey",
        "RentingStartDate",
        "TotalPrice",
        "PaymentStatus",
        "OrderStatus",
        "Version",
    ],
    "RentalLines": ["LineID", "OrderID", "ProductID", "RentedAmount", "PerDayPrice"],
    "ReturnEvents": ["ReturnID", "LineID", "ReturnedQuantity", "ReturnedDate"],
    "AuditLogs": ["AuditID", "EntityType", "EntityID", "Action", "Details", "UserID", "CreatedAt"],
}

# Rented vs returned totals per line.
_LINE_BALANCE_SQL = """
    SELECT rl.LineID,
           rl.OrderID,
           rl.RentedAmount,
           COALESCE(SUM(re.ReturnedQuantity), 0) AS Returned
    FROM RentalLines rl
    LEFT JOIN ReturnEvents re ON re.LineID = rl.LineID
    GROUP BY rl.LineID, rl.OrderID, rl.RentedAmount
"""


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str


def _print_section(title: str) -> None:
    print(f"\n=== {title} ===")


def _get_engine(db_url: str) -> Engine:
    return create_engine(db_url, pool_pre_ping=True, future=True)


def _scalar(engine: Engine, sql: str, params: dict | None = None):
    with engine.connect() as conn:
        return conn.execute(text(sql), params or {}).scalar()


def _rows(engine: Engine, sql: str, params: dict | None = None):
    with engine.connect() as conn:
        return conn.execute(text(sql), params or {}).all()


def _table_names(engine: Engine) -> set[str]:
    return set(inspect(engine).get_table_names())


def _column_names(engine: Engine, table_name: str) -> set[str]:
    return {column["name"] for column in inspect(engine).get_columns(table_name)}


def run_existence_checks(engine: Engine) -> list[CheckResult]:
    present = _table_names(engine)
    return [
        CheckResult(f"table:{table}", table in present, "present" if table in present else "missing")
        for table in EXPECTED_TABLES
    ]


def run_column_checks(engine: Engine) -> list[CheckResult]:
    present = _table_names(engine)
    results: list[CheckResult] = []
    for table, expected in EXPECTED_COLUMNS.items():
        if table not in present:
            results.append(CheckResult(f"columns:{table}", False, "table missing"))
            continue
        actual = _column_names(engine, table)
        missing = [name for name in expected if name not in actual]
        results.append(
            CheckResult(
                f"columns:{table}",
                not missing,
                "ok" if not missing else f"missing={','.join(missing)}",
            )
        )
    return results


def run_integrity_checks(engine: Engine) -> list[CheckResult]:
    present = _table_names(engine)
    checks: list[CheckResult] = []

    if "Products" in present:
        negative_stock = _scalar(engine, "SELECT COUNT(*) FROM Products WHERE Stock < 0")
        checks.append(
            CheckResult(
                "products:negative_stock",
                int(negative_stock or 0) == 0,
                f"count={int(negative_stock or 0)}",
            )
        )

    if {"RentalLines", "ReturnEvents"} <= present:
        over_returned = _scalar(
            engine,
            f"SELECT COUNT(*) FROM ({_LINE_BALANCE_SQL}) b WHERE b.Returned > b.RentedAmount",
        )
        checks.append(
            CheckResult(
                "rentallines:over_returned",
                int(over_returned or 0) == 0,
                f"count={int(over_returned or 0)}",
            )
        )

    if {"Orders", "RentalLines", "ReturnEvents"} <= present:
        closed_with_open_lines = _scalar(
            engine,
            f"""
            SELECT COUNT(DISTINCT o.OrderID)
            FROM Orders o
            JOIN ({_LINE_BALANCE_SQL}) b ON b.OrderID = o.OrderID
            WHERE o.OrderStatus = 'returned_after_rent' AND b.Returned < b.RentedAmount
            """,
        )
        checks.append(
            CheckResult(
                "orders:returned_with_open_quantity",
                int(closed_with_open_lines or 0) == 0,
                f"count={int(closed_with_open_lines or 0)}",
            )
        )

    if "Orders" in present:
        priced_cancellations = _scalar(
            engine,
            "SELECT COUNT(*) FROM Orders WHERE OrderStatus = 'cancelled' AND TotalPrice <> 0",
        )
        checks.append(
            CheckResult(
                "orders:cancelled_with_total",
                int(priced_cancellations or 0) == 0,
                f"count={int(priced_cancellations or 0)}",
            )
        )

        duplicate_keys = _scalar(
            engine,
            """
            SELECT COUNT(*)
            FROM (
                SELECT IdempotencyKey
                FROM Orders
                GROUP BY IdempotencyKey
                HAVING COUNT(*) > 1
            ) d
            """,
        )
        checks.append(
            CheckResult(
                "orders:duplicate_idempotency_key",
                int(duplicate_keys or 0) == 0,
                f"count={int(duplicate_keys or 0)}",
            )
        )

    return checks


def _print_results(title: str, rows: Iterable[CheckResult]) -> None:
    _print_section(title)
    for row in rows:
        status = "OK" if row.ok else "FAIL"
        print(f"[{status}] {row.name} :: {row.detail}")


def _print_row_counts(engine: Engine) -> None:
    _print_section("Row Counts")
    present = _table_names(engine)
    for table in EXPECTED_TABLES:
        if table not in present:
            print(f"{table}: missing")
            continue
        count = _scalar(engine, f"SELECT COUNT(*) FROM {table}")
        print(f"{table}: {int(count or 0)}")


def _print_samples(engine: Engine, sample_size: int) -> None:
    _print_section("Sample Values")
    sample_size = max(1, sample_size)
    present = _table_names(engine)

    if "Orders" in present:
        rows = _rows(
            engine,
            """
            SELECT OrderID, OrderNumber, OrderStatus, PaymentStatus, TotalPrice
            FROM Orders
            ORDER BY OrderID DESC
            LIMIT :n
            """,
            {"n": sample_size},
        )
        print("Orders (recent):")
        for row in rows:
            print(f"  - {tuple(row)}")

    if "AuditLogs" in present:
        rows = _rows(
            engine,
            """
            SELECT AuditID, EntityType, Action, UserID, CreatedAt
            FROM AuditLogs
            ORDER BY AuditID DESC
            LIMIT :n
            """,
            {"n": sample_size},
        )
        print("AuditLogs (recent):")
        for row in rows:
            print(f"  - {tuple(row)}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="RentalManagement DB overview")
    parser.add_argument("--db-url", default=os.environ.get("RENTAL_MANAGEMENT_DB_URL", ""))
    parser.add_argument("--samples", type=int, default=5)
    args = parser.parse_args(argv)

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("RENTAL_MANAGEMENT_DB_URL is not set. Provide --db-url or export env first.")
        return 2

    try:
        engine = _get_engine(db_url)
        _scalar(engine, "SELECT 1")
    except Exception as exc:
        print(f"Could not connect to DB: {exc}")
        return 3

    integrity = run_integrity_checks(engine)
    _print_results("Table Existence", run_existence_checks(engine))
    _print_results("Column Checks", run_column_checks(engine))
    _print_results("Integrity Checks", integrity)
    _print_row_counts(engine)
    _print_samples(engine, args.samples)
    return 0 if all(check.ok for check in integrity) else 1


if __name__ == "__main__":
    sys.exit(main())
