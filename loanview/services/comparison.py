# ==============================================
# File: loanview/services/comparison.py
# Description: Lender rate comparison, market listing and rate statistics
# ==============================================

from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass, replace
import logging

from loanview.catalog import Lender, LenderCatalog, LenderLoanOffer
from loanview.tools.finance_math import FinanceMathTools

logger = logging.getLogger(__name__)

DEFAULT_COMPARISON_AMOUNT = 1_000_000
DEFAULT_COMPARISON_TENURE_MONTHS = 240

SORT_KEYS = {
    "lenderName": lambda row: row.lender_name.lower(),
    "loanType": lambda row: row.loan_type_id,
    "interestRate": lambda row: row.annual_rate_percent,
    "maxTenure": lambda row: row.max_tenure_years,
}


@dataclass(frozen=True)
class ComparisonRow:
    """One lender's offer, with the cost of a reference loan when computed"""
    lender_id: str
    lender_name: str
    category: str
    loan_type_id: str
    annual_rate_percent: float
    max_tenure_years: float
    min_credit_score: int
    application_url: str
    emi: Optional[float] = None
    total_interest: Optional[float] = None
    total_payment: Optional[float] = None
    best_offer: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lenderId": self.lender_id,
            "lenderName": self.lender_name,
            "category": self.category,
            "loanTypeId": self.loan_type_id,
            "annualRatePercent": self.annual_rate_percent,
            "maxTenureYears": self.max_tenure_years,
            "minCreditScore": self.min_credit_score,
            "emi": self.emi,
            "totalInterest": self.total_interest,
            "totalPayment": self.total_payment,
            "bestOffer": self.best_offer,
            "applicationUrl": self.application_url,
        }


@dataclass(frozen=True)
class RateStatistics:
    loan_type_id: Optional[str]
    offer_count: int
    min_rate_percent: Optional[float] = None
    average_rate_percent: Optional[float] = None
    max_rate_percent: Optional[float] = None
    lowest_average_loan_type: Optional[str] = None
    highest_average_loan_type: Optional[str] = None
    lender_with_most_offers: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loanTypeId": self.loan_type_id,
            "offerCount": self.offer_count,
            "minRatePercent": self.min_rate_percent,
            "averageRatePercent": self.average_rate_percent,
            "maxRatePercent": self.max_rate_percent,
            "lowestAverageLoanType": self.lowest_average_loan_type,
            "highestAverageLoanType": self.highest_average_loan_type,
            "lenderWithMostOffers": self.lender_with_most_offers,
        }


def _row(lender: Lender, offer: LenderLoanOffer) -> ComparisonRow:
    return ComparisonRow(
        lender_id=lender.id,
        lender_name=lender.name,
        category=lender.category,
        loan_type_id=offer.loan_type_id,
        annual_rate_percent=offer.annual_rate_percent,
        max_tenure_years=offer.max_tenure_years,
        min_credit_score=offer.min_credit_score,
        application_url=lender.application_url,
    )


class RateComparisonService:
    """Read-only views over the catalog for the comparison card and market pages"""

    def __init__(self, catalog: LenderCatalog):
        self.catalog = catalog

    def compare_offers(
        self,
        loan_type_id: str,
        amount: float = DEFAULT_COMPARISON_AMOUNT,
        tenure_months: int = DEFAULT_COMPARISON_TENURE_MONTHS,
    ) -> List[ComparisonRow]:
        """
        Offers for one loan type, lowest rate first, each priced for the
        reference amount and tenure. The first row is flagged as the best offer.

        Lenders with equal rates keep their catalog order.

        Raises:
            UnknownLoanType: If the loan type is not in the catalog
        """
        loan_type = self.catalog.get_loan_type(loan_type_id)
        ranked = sorted(
            self.catalog.offers_for(loan_type.id),
            key=lambda pair: pair[1].annual_rate_percent,
        )

        rows: List[ComparisonRow] = []
        for index, (lender, offer) in enumerate(ranked):
            details = FinanceMathTools.compute_loan_details(amount, offer.annual_rate_percent, tenure_months)
            rows.append(replace(
                _row(lender, offer),
                emi=details.emi if details else None,
                total_interest=details.total_interest if details else None,
                total_payment=details.total_payment if details else None,
                best_offer=index == 0,
            ))
        return rows

    def rate_statistics(self, loan_type_id: Optional[str] = None) -> RateStatistics:
        """
        Min / average / max rate over the selected offers (all offers when
        loan_type_id is None), plus the loan types with the lowest and highest
        average rate and the lender listing the most offers.
        """
        if loan_type_id is not None:
            loan_type_id = self.catalog.get_loan_type(loan_type_id).id
            pairs = self.catalog.offers_for(loan_type_id)
        else:
            pairs = self.catalog.all_offers()

        if not pairs:
            return RateStatistics(loan_type_id=loan_type_id, offer_count=0)

        rates = [offer.annual_rate_percent for _, offer in pairs]

        per_type: Dict[str, Tuple[float, int]] = {}
        per_lender: Dict[str, int] = {}
        for lender, offer in pairs:
            total, count = per_type.get(offer.loan_type_id, (0.0, 0))
            per_type[offer.loan_type_id] = (total + offer.annual_rate_percent, count + 1)
            per_lender[lender.name] = per_lender.get(lender.name, 0) + 1

        averages = {type_id: total / count for type_id, (total, count) in per_type.items()}
        # min/max keep the first type on ties (dicts preserve catalog order)
        lowest = min(averages, key=averages.get)
        highest = max(averages, key=averages.get)
        busiest = max(per_lender, key=per_lender.get)

        return RateStatistics(
            loan_type_id=loan_type_id,
            offer_count=len(pairs),
            min_rate_percent=min(rates),
            average_rate_percent=round(sum(rates) / len(rates), 2),
            max_rate_percent=max(rates),
            lowest_average_loan_type=lowest,
            highest_average_loan_type=highest,
            lender_with_most_offers=busiest,
        )

    def market_listing(self, sort_key: str = "lenderName", descending: bool = False) -> List[ComparisonRow]:
        """
        Every (lender, offer) row in the catalog, sorted by one column.

        Args:
            sort_key: lenderName | loanType | interestRate | maxTenure

        Raises:
            ValueError: If sort_key is not one of the supported columns
        """
        if sort_key not in SORT_KEYS:
            raise ValueError(f"Unsupported sort key '{sort_key}'. Use one of: {', '.join(SORT_KEYS)}")
        rows = [_row(lender, offer) for lender, offer in self.catalog.all_offers()]
        return sorted(rows, key=SORT_KEYS[sort_key], reverse=descending)
