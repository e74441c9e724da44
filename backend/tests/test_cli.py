"""
Order maintenance commands run through the Flask CLI runner.
"""

from datetime import datetime
from decimal import Decimal

import pytest


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def test_mark_overdue_moves_past_due_orders(runner, order, db_session):
    order.end_datetime = datetime(2020, 1, 2, 18, 0, 0)
    db_session.commit()

    result = runner.invoke(args=["orders", "mark-overdue"])

    assert result.exit_code == 0, result.output
    assert f"PASS Marked 1 order(s) pending_return: {order.id}" in result.output
    assert db_session.get(type(order), order.id).status == "pending_return"


def test_mark_overdue_with_nothing_due(runner, order, db_session):
    order.end_datetime = datetime(2999, 1, 1, 18, 0, 0)
    db_session.commit()

    result = runner.invoke(args=["orders", "mark-overdue"])

    assert result.exit_code == 0
    assert "PASS No overdue orders." in result.output


def test_recalc_balances_reports_each_order(runner, order):
    result = runner.invoke(args=["orders", "recalc-balances", "--order-id", str(order.id)])

    assert result.exit_code == 0, result.output
    assert f"PASS Order {order.id}: deposit_balance 1000.00" in result.output


def test_recalc_balances_fails_for_unknown_order(runner, db_session):
    result = runner.invoke(args=["orders", "recalc-balances", "--order-id", "9999"])

    assert result.exit_code == 1
    assert "FAIL Order 9999" in result.output
    assert "1 order(s) failed" in result.output


def test_recalc_totals_fixes_drift(runner, order, db_session):
    order.total_amount = Decimal("1.00")
    db_session.commit()

    result = runner.invoke(args=["orders", "recalc-totals"])

    assert result.exit_code == 0, result.output
    assert f"FIXED Order {order.id}" in result.output
    assert "PASS 1 order(s) corrected" in result.output
    assert db_session.get(type(order), order.id).total_amount == Decimal("2100.00")


def test_recalc_totals_fails_for_unknown_order(runner, db_session):
    result = runner.invoke(args=["orders", "recalc-totals", "--order-id", "9999"])

    assert result.exit_code == 1
    assert "FAIL Order 9999" in result.output
    assert "PASS 0 order(s) corrected" in result.output


def test_system_init_is_idempotent(runner, db_session):
    first = runner.invoke(args=["system", "init", "--branch", "Koramangala"])
    second = runner.invoke(args=["system", "init", "--branch", "Koramangala"])

    assert first.exit_code == 0, first.output
    assert "PASS Created branch: Koramangala" in first.output
    assert "PASS Using existing branch: Koramangala" in second.output
    assert "PASS Using existing super admin: admin" in second.output
