import logging
import math
from dataclasses import dataclass, asdict
from typing import Dict, Any, List, Optional

from loanview.exceptions import CalculatorInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoanDetails:
    """Repayment summary for one loan (EMI rounded to 2 dp for presentation)"""
    emi: float
    principal: float
    total_interest: float
    total_payment: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AmortizationEntry:
    period: int
    principal_portion: float
    interest_portion: float
    remaining_balance: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _check_inputs(principal: float, annual_rate_percent: float, tenure_months: int) -> None:
    if principal is None or annual_rate_percent is None or tenure_months is None:
        raise CalculatorInputError("principal, rate and tenure are all required")
    if not all(math.isfinite(v) for v in (principal, annual_rate_percent, tenure_months)):
        raise CalculatorInputError("principal, rate and tenure must be finite numbers")
    if principal <= 0:
        raise CalculatorInputError(f"principal must be positive, got {principal}")
    if annual_rate_percent < 0:
        raise CalculatorInputError(f"annual rate cannot be negative, got {annual_rate_percent}")
    if tenure_months <= 0:
        raise CalculatorInputError(f"tenure must be positive, got {tenure_months} months")


class FinanceMathTools:
    """
    Pure loan calculations shared by the evaluator, the comparison service
    and the calculator endpoints. No state, no persistence: callers decide
    what to keep.
    """

    @staticmethod
    def compute_emi(principal: float, annual_rate_percent: float, tenure_months: int) -> float:
        """
        Equated Monthly Installment at full precision.

        Args:
            principal (float): Loan amount
            annual_rate_percent (float): Annual interest rate in percent (e.g. 8.5)
            tenure_months (int): Number of monthly installments

        Returns:
            float: EMI, unrounded

        Raises:
            CalculatorInputError: principal <= 0, rate < 0 or tenure_months <= 0
        """
        _check_inputs(principal, annual_rate_percent, tenure_months)

        p = float(principal)
        n = tenure_months

        if annual_rate_percent == 0:
            # Interest-free scheme
            return p / n

        r = float(annual_rate_percent) / (12 * 100)
        growth = (1 + r) ** n
        return p * r * growth / (growth - 1)

    @staticmethod
    def compute_loan_details(principal: float, annual_rate_percent: float, tenure_months: int) -> Optional[LoanDetails]:
        """
        EMI, total payment and total interest for a loan.

        Returns None for invalid input instead of raising (calculator sliders
        can transiently hold zero or negative values).

        Example:
            >>> d = FinanceMathTools.compute_loan_details(1_000_000, 8.5, 240)
            >>> d.total_payment == d.emi * 240
            True
        """
        try:
            emi = FinanceMathTools.compute_emi(principal, annual_rate_percent, tenure_months)
        except CalculatorInputError as e:
            logger.warning(f"Loan details unavailable: {e}")
            return None

        emi = round(emi, 2)
        total_payment = emi * tenure_months
        total_interest = total_payment - principal

        return LoanDetails(
            emi=emi,
            principal=float(principal),
            total_interest=total_interest,
            total_payment=total_payment,
        )

    @staticmethod
    def build_amortization_schedule(principal: float, annual_rate_percent: float, tenure_months: int) -> List[AmortizationEntry]:
        """
        Month-by-month split of each installment into principal and interest.

        The balance is floored at zero so floating-point drift cannot leave a
        negative remainder on the last period. Invalid input yields an empty
        schedule.
        """
        months = int(tenure_months or 0)
        try:
            emi = FinanceMathTools.compute_emi(principal, annual_rate_percent, months)
        except CalculatorInputError as e:
            logger.warning(f"Amortization schedule unavailable: {e}")
            return []

        monthly_rate = float(annual_rate_percent) / (12 * 100)
        balance = float(principal)
        schedule: List[AmortizationEntry] = []

        for period in range(1, months + 1):
            interest_portion = balance * monthly_rate
            principal_portion = emi - interest_portion
            balance = max(0.0, balance - principal_portion)
            schedule.append(AmortizationEntry(
                period=period,
                principal_portion=principal_portion,
                interest_portion=interest_portion,
                remaining_balance=balance,
            ))

        return schedule


compute_emi = FinanceMathTools.compute_emi
compute_loan_details = FinanceMathTools.compute_loan_details
build_amortization_schedule = FinanceMathTools.build_amortization_schedule
