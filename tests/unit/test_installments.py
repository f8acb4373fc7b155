"""Unit tests for installment schedule generation"""

from datetime import date, timedelta
from bnpl_ledger.domain.installments import generate_installment_plan


def test_generate_installment_plan_equal_split():
    """Test plan with evenly divisible amount"""
    amount = 40000
    installments = generate_installment_plan(amount, 4)

    assert len(installments) == 4
    assert all(inst.amount_cents == 10000 for inst in installments)
    assert sum(inst.amount_cents for inst in installments) == amount


def test_generate_installment_plan_rounding():
    """Test last installment absorbs remainder"""
    amount = 110003
    installments = generate_installment_plan(amount, 4)

    assert [inst.amount_cents for inst in installments] == [27500, 27500, 27500, 27503]
    assert sum(inst.amount_cents for inst in installments) == amount


def test_generate_installment_plan_weekly_dates():
    """First installment is due one interval after the sale"""
    start = date(2026, 3, 2)
    installments = generate_installment_plan(40000, 4, start_date=start)

    assert installments[0].due_date == start + timedelta(days=7)
    assert installments[1].due_date == start + timedelta(days=14)
    assert installments[3].due_date == start + timedelta(days=28)


def test_generate_installment_plan_custom_interval():
    start = date(2026, 3, 2)
    installments = generate_installment_plan(60000, 2, interval_days=30, start_date=start)

    assert [inst.due_date for inst in installments] == [date(2026, 4, 1), date(2026, 5, 1)]


def test_generate_installment_plan_zero_amount():
    """Nothing left to pay means no schedule"""
    assert generate_installment_plan(0, 4) == []
    assert generate_installment_plan(1000, 0) == []
