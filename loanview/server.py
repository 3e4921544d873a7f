# ==============================================
# File: loanview/server.py
# Description: LoanView advisor FastAPI server
# ==============================================

import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query

from loanview.catalog import LenderCatalog
from loanview.config import settings
from loanview.core.assembler import ResponseAssembler, build_assembler
from loanview.exceptions import CalculatorInputError, UnknownLoanType
from loanview.logging_config import setup_logging, log_event
from loanview.models import (
    AmortizationResponse,
    AmortizationRow,
    ComparisonRowResponse,
    EnvelopeResponse,
    ErrorResponse,
    LoanDetailsResponse,
    LoanInputRequest,
    RateStatisticsResponse,
    UtteranceRequest,
)
from loanview.services.comparison import SORT_KEYS, RateComparisonService
from loanview.tools.finance_math import FinanceMathTools

load_dotenv()

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_assembler() -> ResponseAssembler:
    """Process-wide engine (overridden in tests via app.dependency_overrides)"""
    return build_assembler(settings)


def get_catalog(assembler: ResponseAssembler = Depends(get_assembler)) -> LenderCatalog:
    return assembler.catalog


def get_comparison(assembler: ResponseAssembler = Depends(get_assembler)) -> RateComparisonService:
    return assembler.comparison


def _bad_request(error_type: str, error: Exception, details: Optional[dict] = None) -> HTTPException:
    body = ErrorResponse(error=str(error), error_type=error_type, details=details)
    return HTTPException(status_code=400, detail=body.model_dump())


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(log_file=settings.log_file, level=settings.log_level, json_logs=settings.json_logs)
    get_assembler()
    logger.info("[PACKAGE] Server startup complete")
    yield
    logger.info("[PACKAGE] Server shutdown complete")


# ---------------------------
# Create FastAPI App
# ---------------------------
app = FastAPI(
    title="LoanView Advisor",
    description="Conversational loan advisor: loan recommendations, lender comparison and eligibility checks",
    version="1.0.0",
    lifespan=lifespan
)


# ---------------------------
# Chat
# ---------------------------
@app.post("/chat", response_model=EnvelopeResponse)
async def chat(request: UtteranceRequest, assembler: ResponseAssembler = Depends(get_assembler)):
    """
    Process one chat message.

    Always answers with an envelope: interview questions, recommendations,
    comparison snapshots and eligibility results all share the same shape.
    """
    envelope = await assembler.submit_utterance(request.sessionId, request.text)
    return envelope.to_dict()


# ---------------------------
# Calculator
# ---------------------------
@app.post("/tools/emi", response_model=LoanDetailsResponse, responses={400: {"model": ErrorResponse}})
async def loan_details(request: LoanInputRequest):
    """EMI, total interest and total payment for a loan"""
    try:
        FinanceMathTools.compute_emi(request.principal, request.annualRatePercent, request.tenureMonths)
    except CalculatorInputError as e:
        raise _bad_request("calculator_input_error", e, request.model_dump())

    details = FinanceMathTools.compute_loan_details(
        request.principal, request.annualRatePercent, request.tenureMonths
    )
    return LoanDetailsResponse(
        emi=details.emi,
        principal=details.principal,
        totalInterest=details.total_interest,
        totalPayment=details.total_payment,
    )


@app.post("/tools/amortization", response_model=AmortizationResponse, responses={400: {"model": ErrorResponse}})
async def amortization(request: LoanInputRequest):
    """Month-by-month repayment schedule"""
    try:
        emi = FinanceMathTools.compute_emi(request.principal, request.annualRatePercent, request.tenureMonths)
    except CalculatorInputError as e:
        raise _bad_request("calculator_input_error", e, request.model_dump())

    schedule = FinanceMathTools.build_amortization_schedule(
        request.principal, request.annualRatePercent, request.tenureMonths
    )
    return AmortizationResponse(
        emi=round(emi, 2),
        schedule=[
            AmortizationRow(
                period=entry.period,
                principalPortion=entry.principal_portion,
                interestPortion=entry.interest_portion,
                remainingBalance=entry.remaining_balance,
            )
            for entry in schedule
        ],
    )


# ---------------------------
# Catalog & comparison
# ---------------------------
@app.get("/lenders")
async def list_lenders(catalog: LenderCatalog = Depends(get_catalog)):
    """Lenders with their offers, in catalog order"""
    return [
        {
            "id": lender.id,
            "name": lender.name,
            "category": lender.category,
            "applicationUrl": lender.application_url,
            "offers": [
                {
                    "loanTypeId": offer.loan_type_id,
                    "annualRatePercent": offer.annual_rate_percent,
                    "maxTenureYears": offer.max_tenure_years,
                    "minCreditScore": offer.min_credit_score,
                }
                for offer in lender.offers
            ],
        }
        for lender in catalog.lenders
    ]


@app.get("/compare/{loan_type}", response_model=List[ComparisonRowResponse], responses={400: {"model": ErrorResponse}})
async def compare(
    loan_type: str,
    amount: Optional[float] = Query(default=None, gt=0, description="Reference loan amount (defaults to configured amount)"),
    tenure_months: Optional[int] = Query(default=None, gt=0, alias="tenureMonths"),
    assembler: ResponseAssembler = Depends(get_assembler),
):
    """Offers for one loan type, lowest rate first, priced for a reference loan"""
    try:
        rows = assembler.comparison.compare_offers(
            loan_type,
            amount or assembler.comparison_amount,
            tenure_months or assembler.comparison_tenure_months,
        )
    except UnknownLoanType as e:
        raise _bad_request("unknown_loan_type", e)
    log_event(logger, "comparison_served", "comparison", {"loan_type": loan_type, "offers": len(rows)})
    return [row.to_dict() for row in rows]


@app.get("/market", response_model=List[ComparisonRowResponse], responses={400: {"model": ErrorResponse}})
async def market(
    sort_by: str = Query(default="lenderName", alias="sortBy", description=f"One of: {', '.join(SORT_KEYS)}"),
    descending: bool = False,
    comparison: RateComparisonService = Depends(get_comparison),
):
    """Every lender offer in the market, sorted by one column"""
    try:
        rows = comparison.market_listing(sort_by, descending)
    except ValueError as e:
        raise _bad_request("invalid_sort_key", e)
    return [row.to_dict() for row in rows]


@app.get("/market/stats", response_model=RateStatisticsResponse, responses={400: {"model": ErrorResponse}})
async def market_stats(
    loan_type: Optional[str] = Query(default=None, alias="loanType"),
    comparison: RateComparisonService = Depends(get_comparison),
):
    """Min / average / max rates, optionally for one loan type"""
    try:
        stats = comparison.rate_statistics(loan_type)
    except UnknownLoanType as e:
        raise _bad_request("unknown_loan_type", e)
    return stats.to_dict()


@app.get("/health")
async def health_check(assembler: ResponseAssembler = Depends(get_assembler)):
    """Health check endpoint"""
    return {
        "status": "healthy",
        "lenders": len(assembler.catalog.lenders),
        "generator": "configured" if assembler.generator is not None else "disabled",
        "active_interviews": assembler.sessions.active_count(),
    }


# ---------------------------
# Entry Point
# ---------------------------
if __name__ == "__main__":
    import uvicorn
    logger.info("[START] Starting uvicorn server on port 8000")
    uvicorn.run(app, host="0.0.0.0", port=8000)
