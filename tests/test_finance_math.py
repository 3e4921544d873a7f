import pytest

from loanview.exceptions import CalculatorInputError
from loanview.tools.finance_math import FinanceMathTools


def test_zero_rate_emi_is_exact_division():
    assert FinanceMathTools.compute_emi(1_000_000, 0, 240) == 1_000_000 / 240


def test_emi_matches_standard_formula():
    emi = FinanceMathTools.compute_emi(1_000_000, 8.5, 240)
    assert emi == pytest.approx(8678.23, abs=0.5)


def test_loan_details_totals_follow_rounded_emi():
    details = FinanceMathTools.compute_loan_details(1_000_000, 8.5, 240)

    assert details.emi == round(details.emi, 2)
    assert details.total_payment == details.emi * 240
    assert details.total_interest == details.total_payment - 1_000_000
    assert details.principal == 1_000_000


@pytest.mark.parametrize("principal,rate,tenure", [
    (0, 8.5, 240),
    (-5000, 8.5, 240),
    (100000, -1, 12),
    (100000, 8.5, 0),
    (None, 8.5, 12),
    (float("nan"), 8.5, 12),
])
def test_invalid_inputs(principal, rate, tenure):
    with pytest.raises(CalculatorInputError):
        FinanceMathTools.compute_emi(principal, rate, tenure)
    assert FinanceMathTools.compute_loan_details(principal, rate, tenure) is None
    assert FinanceMathTools.build_amortization_schedule(principal, rate, tenure) == []


def test_amortization_schedule_pays_off_principal():
    schedule = FinanceMathTools.build_amortization_schedule(500_000, 9.5, 60)

    assert len(schedule) == 60
    assert [entry.period for entry in schedule] == list(range(1, 61))
    assert schedule[-1].remaining_balance == pytest.approx(0, abs=1e-6)
    assert sum(entry.principal_portion for entry in schedule) == pytest.approx(500_000, rel=1e-9)
    assert all(entry.remaining_balance >= 0 for entry in schedule)


def test_amortization_interest_shrinks_over_time():
    schedule = FinanceMathTools.build_amortization_schedule(1_000_000, 8.5, 240)

    assert schedule[0].interest_portion == pytest.approx(1_000_000 * 8.5 / 1200)
    assert schedule[0].interest_portion > schedule[-1].interest_portion
    assert schedule[0].principal_portion < schedule[-1].principal_portion


def test_zero_rate_schedule_has_no_interest():
    schedule = FinanceMathTools.build_amortization_schedule(12_000, 0, 12)

    assert all(entry.interest_portion == 0 for entry in schedule)
    assert all(entry.principal_portion == 1_000 for entry in schedule)
    assert schedule[-1].remaining_balance == 0


def test_schedule_is_restartable():
    first = FinanceMathTools.build_amortization_schedule(250_000, 7.25, 36)
    second = FinanceMathTools.build_amortization_schedule(250_000, 7.25, 36)
    assert first == second
