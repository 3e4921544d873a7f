# ==============================================
# File: loanview/services/eligibility.py
# Description: Per-lender eligibility checks for a completed interview
# ==============================================

from __future__ import annotations
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field, asdict
import logging

from loanview.catalog import LenderCatalog, Lender, LenderLoanOffer
from loanview.exceptions import CalculatorInputError
from loanview.tools.finance_math import FinanceMathTools

logger = logging.getLogger(__name__)

# Debt-to-income cap: new EMI may use at most this share of income left after existing EMIs
AFFORDABILITY_RATIO = 0.5


@dataclass(frozen=True)
class EligibilityApplication:
    """Validated interview answers, in the units the evaluator works with"""
    loan_type_id: str
    amount: float
    tenure_years: float
    monthly_income: float
    credit_score: int
    existing_emi: float
    employment_type: str

    @classmethod
    def from_collected(cls, data: Dict[str, Any]) -> "EligibilityApplication":
        """Build from interview collected data (keys as asked in the interview)"""
        return cls(
            loan_type_id=data["loanType"],
            amount=data["amount"],
            tenure_years=data["tenure"],
            monthly_income=data["monthlyIncome"],
            credit_score=int(data["creditScore"]),
            existing_emi=data["existingEMI"],
            employment_type=data["employmentType"],
        )


@dataclass
class EligibilityVerdict:
    """
    Result for one lender offering the requested loan type.

    reasons is empty iff eligible. The EMI and rate are reported either way
    so an ineligible lender still shows what the loan would cost.
    """
    lender_id: str
    lender_name: str
    eligible: bool
    reasons: List[str] = field(default_factory=list)
    estimated_monthly_installment: Optional[float] = None
    offered_rate_percent: float = 0.0
    application_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {
            "lenderId": data["lender_id"],
            "lenderName": data["lender_name"],
            "eligible": data["eligible"],
            "reasons": data["reasons"],
            "estimatedMonthlyInstallment": data["estimated_monthly_installment"],
            "offeredRatePercent": data["offered_rate_percent"],
            "applicationUrl": data["application_url"],
        }


def _fmt_amount(value: float) -> str:
    return f"₹{value:,.0f}"


def _fmt_years(value: float) -> str:
    return f"{value:g}y"


class EligibilityEvaluator:
    """
    Checks an application against every lender that offers the loan type.

    Lenders without an offer for the type are left out of the result, and
    verdicts follow the catalog's lender order.
    """

    def __init__(self, catalog: LenderCatalog):
        self.catalog = catalog

    def evaluate_offer(self, lender: Lender, offer: LenderLoanOffer, application: EligibilityApplication) -> EligibilityVerdict:
        reasons: List[str] = []

        # Credit check
        if offer.min_credit_score > 0 and application.credit_score < offer.min_credit_score:
            shortfall = offer.min_credit_score - application.credit_score
            reasons.append(
                f"Credit score {application.credit_score} is below the required "
                f"{offer.min_credit_score} (short by {shortfall})."
            )

        # Tenure check
        if application.tenure_years > offer.max_tenure_years:
            reasons.append(
                f"Requested tenure ({_fmt_years(application.tenure_years)}) exceeds the lender's "
                f"maximum tenure ({_fmt_years(offer.max_tenure_years)})."
            )

        # Affordability check
        emi: Optional[float] = None
        try:
            emi = FinanceMathTools.compute_emi(
                application.amount,
                offer.annual_rate_percent,
                application.tenure_years * 12,
            )
        except CalculatorInputError as e:
            logger.error(f"EMI estimate failed for {lender.id}/{offer.loan_type_id}: {e}")
            reasons.append("Monthly installment estimate unavailable for this offer.")

        if emi is not None:
            net_available = max(0.0, application.monthly_income - application.existing_emi)
            allowed = net_available * AFFORDABILITY_RATIO
            if emi > allowed:
                reasons.append(
                    f"Estimated EMI {_fmt_amount(emi)} exceeds {AFFORDABILITY_RATIO:.0%} of your net income "
                    f"after existing EMIs ({_fmt_amount(allowed)})."
                )
            emi = round(emi, 2)

        return EligibilityVerdict(
            lender_id=lender.id,
            lender_name=lender.name,
            eligible=not reasons,
            reasons=reasons,
            estimated_monthly_installment=emi,
            offered_rate_percent=offer.annual_rate_percent,
            application_url=lender.application_url,
        )

    def evaluate(self, application: EligibilityApplication) -> List[EligibilityVerdict]:
        """
        Evaluate an application against the catalog.

        Returns:
            One verdict per offering lender, in catalog order (may be empty)
        """
        verdicts = [
            self.evaluate_offer(lender, offer, application)
            for lender, offer in self.catalog.offers_for(application.loan_type_id)
        ]
        eligible_count = sum(1 for v in verdicts if v.eligible)
        logger.info(
            f"Evaluated {application.loan_type_id} application: "
            f"{eligible_count}/{len(verdicts)} lenders eligible"
        )
        return verdicts
