"""
Pydantic models for API requests and responses

Provides type-safe request/response schemas for the FastAPI endpoints and
the schema the optional text generator's replies are validated against.
"""

from pydantic import AliasChoices, BaseModel, Field, field_validator
from typing import Optional, Dict, Any, List


# ==================== Request Models ====================

class UtteranceRequest(BaseModel):
    """
    One user chat message.

    This is the input to the /chat endpoint; sessionId scopes the
    eligibility interview to one conversation.
    """

    sessionId: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Conversation ID that scopes interview state"
    )
    text: str = Field(
        ...,
        max_length=2000,
        description="User message (up to 2,000 characters)"
    )

    class Config:
        """Pydantic configuration"""
        json_schema_extra = {
            "example": {
                "sessionId": "conv_456",
                "text": "I need a laptop loan"
            }
        }


class LoanInputRequest(BaseModel):
    """Loan parameters for the calculator endpoints"""

    principal: float = Field(
        ...,
        description="Loan amount in ₹"
    )
    annualRatePercent: float = Field(
        ...,
        description="Annual interest rate in percent (e.g. 8.5)"
    )
    tenureMonths: int = Field(
        ...,
        description="Number of monthly installments"
    )

    class Config:
        """Pydantic configuration"""
        json_schema_extra = {
            "example": {
                "principal": 1000000,
                "annualRatePercent": 8.5,
                "tenureMonths": 240
            }
        }


# ==================== Response Models ====================

class EnvelopeResponse(BaseModel):
    """One advisor reply, as rendered by the chat UI"""

    displayText: str = Field(
        ...,
        description="Reply text (may contain **bold** markdown)"
    )
    category: str = Field(
        ...,
        description="welcome / text / loan_card / comparison_card / start_eligibility / eligibility_result"
    )
    payload: Optional[Any] = Field(
        default=None,
        description="Structured part: loan type id, comparison rows, verdicts or interview progress"
    )
    title: Optional[str] = Field(
        default=None,
        description="Card title"
    )
    tip: Optional[str] = Field(
        default=None,
        description="Usage hint shown under the reply"
    )


class LoanDetailsResponse(BaseModel):
    emi: float = Field(..., description="Monthly installment, rounded to 2 decimals")
    principal: float
    totalInterest: float
    totalPayment: float


class AmortizationRow(BaseModel):
    period: int
    principalPortion: float
    interestPortion: float
    remainingBalance: float


class AmortizationResponse(BaseModel):
    emi: float = Field(..., description="Monthly installment, rounded to 2 decimals")
    schedule: List[AmortizationRow] = Field(
        default=[],
        description="One row per month"
    )


class ComparisonRowResponse(BaseModel):
    lenderId: str
    lenderName: str
    category: str
    loanTypeId: str
    annualRatePercent: float
    maxTenureYears: float
    minCreditScore: int
    emi: Optional[float] = None
    totalInterest: Optional[float] = None
    totalPayment: Optional[float] = None
    bestOffer: bool = False
    applicationUrl: str = ""


class RateStatisticsResponse(BaseModel):
    loanTypeId: Optional[str] = Field(None, description="Loan type filter (None = all types)")
    offerCount: int
    minRatePercent: Optional[float] = None
    averageRatePercent: Optional[float] = None
    maxRatePercent: Optional[float] = None
    lowestAverageLoanType: Optional[str] = None
    highestAverageLoanType: Optional[str] = None
    lenderWithMostOffers: Optional[str] = None


class ErrorResponse(BaseModel):
    """
    Error response model.

    Returned by the calculator and catalog endpoints when the request is
    well-formed but cannot be served (invalid loan figures, unknown ids).
    """

    error: str = Field(
        ...,
        description="High-level error message"
    )
    error_type: str = Field(
        ...,
        description="Error category (e.g., calculator_input_error, unknown_loan_type)"
    )
    details: Optional[Dict[str, Any]] = Field(
        None,
        description="Additional structured error details"
    )

    class Config:
        """Pydantic configuration"""
        json_schema_extra = {
            "examples": [
                {
                    "name": "Invalid loan figures",
                    "value": {
                        "error": "principal must be positive, got 0",
                        "error_type": "calculator_input_error",
                        "details": {"principal": 0, "annualRatePercent": 8.5, "tenureMonths": 240}
                    }
                },
                {
                    "name": "Unknown loan type",
                    "value": {
                        "error": "Invalid loan type: yacht. Valid loan types: home, auto, personal, education, business, gadget",
                        "error_type": "unknown_loan_type",
                    }
                }
            ]
        }


# ==================== Internal Models (for the text generator) ====================

class GeneratorReply(BaseModel):
    """
    Validated reply from the external text generator.

    Accepts both the envelope field names and the advisor prompt's own
    names (type / data).
    """

    text: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("text", "displayText"),
        description="Reply text"
    )
    category: Optional[str] = Field(
        default="text",
        validation_alias=AliasChoices("category", "type"),
        description="Rendering category (unknown values are treated as text)"
    )
    payload: Optional[Any] = Field(
        default=None,
        validation_alias=AliasChoices("payload", "data"),
    )
    title: Optional[str] = None
    tip: Optional[str] = None

    @field_validator('text')
    @classmethod
    def text_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Reply text cannot be empty or whitespace only')
        return v.strip()
