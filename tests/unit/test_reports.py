"""Unit tests for aging and payment reports"""

from datetime import date

from ledger_sync.domain.ledger import build_account
from ledger_sync.domain.models import AgingBucket, AgingReportRow, CollectionStatus, TransactionKind
from ledger_sync.domain.reports import build_aging_report, daily_payments, high_risk_customers


def test_aging_report_rows_and_totals(aged_charges, make_transaction, as_of: date):
    accounts = [
        build_account("cust_1", aged_charges),
        build_account(
            "cust_2",
            [
                make_transaction(TransactionKind.CHARGE, 2000, days_ago=5, customer_id="cust_2"),
                make_transaction(TransactionKind.PAYMENT, 2000, days_ago=1, customer_id="cust_2"),
            ],
        ),
        build_account("cust_3", [make_transaction(TransactionKind.CHARGE, 500, days_ago=3, customer_id="cust_3")]),
    ]

    report = build_aging_report(accounts, as_of, {"cust_1": "Ana", "cust_3": "Carla"})

    # Settled accounts are left out
    assert [row.customer_id for row in report.rows] == ["cust_1", "cust_3"]
    assert report.rows[0].customer_name == "Ana"
    assert report.rows[0].collection_status == CollectionStatus.OVERDUE
    assert report.rows[1].collection_status == CollectionStatus.ACTIVE
    assert report.totals[AgingBucket.CURRENT] == 10500
    assert report.totals[AgingBucket.OVER_90] == 10000
    assert report.total_outstanding_cents == 40500


def _row(customer_id: str, over_90: int, total: int) -> AgingReportRow:
    buckets = {bucket: 0 for bucket in AgingBucket}
    buckets[AgingBucket.OVER_90] = over_90
    buckets[AgingBucket.CURRENT] = total - over_90
    return AgingReportRow(
        customer_id=customer_id,
        customer_name=customer_id,
        buckets=buckets,
        total_owed_cents=total,
        collection_status=CollectionStatus.OVERDUE,
    )


def test_high_risk_ranks_by_over_90_then_total():
    rows = [
        _row("a", 0, 90000),
        _row("b", 5000, 6000),
        _row("c", 5000, 9000),
        _row("d", 12000, 12000),
        _row("e", 100, 100),
        _row("f", 200, 300),
        _row("g", 1, 1),
    ]

    top = high_risk_customers(rows)

    assert [r.customer_id for r in top] == ["d", "c", "b", "f", "e"]


def test_daily_payments_only_counts_that_day(make_transaction, as_of: date):
    txns = [
        make_transaction(TransactionKind.PAYMENT, 1500, days_ago=0),
        make_transaction(TransactionKind.PAYMENT, 500, days_ago=0, customer_id="cust_2"),
        make_transaction(TransactionKind.PAYMENT, 9900, days_ago=1),
        make_transaction(TransactionKind.CHARGE, 4000, days_ago=0),
    ]

    report = daily_payments(txns, as_of)

    assert report.day == as_of
    assert report.payment_count == 2
    assert report.total_amount_cents == 2000
