# ==============================================
# File: loanview/core/interview.py
# Description: Seven-step eligibility interview (question, validate, advance)
# ==============================================

from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from dataclasses import dataclass, field
from enum import Enum
import logging
import math
import re
import time

from loanview.catalog import LenderCatalog
from loanview.exceptions import AnswerValidationError
from loanview.logging_config import log_event
from loanview.services.eligibility import (
    EligibilityApplication,
    EligibilityEvaluator,
    EligibilityVerdict,
)

logger = logging.getLogger(__name__)

Number = Union[int, float]

MAX_TENURE_YEARS = 30
MIN_CREDIT_SCORE = 300
MAX_CREDIT_SCORE = 900

CANCEL_KEYWORD = "cancel"
CANCELLED_TEXT = "Eligibility check cancelled. Ask me anything else about loans whenever you're ready."


class InterviewStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class InterviewSession:
    """
    Interview state for one conversation.

    step_index only moves forward while in progress; collected_data holds
    an answer only after its step accepted it.
    """
    session_id: str
    step_index: int = 0
    collected_data: Dict[str, Any] = field(default_factory=dict)
    status: InterviewStatus = InterviewStatus.NOT_STARTED
    last_active: float = field(default_factory=time.monotonic)

    @property
    def is_active(self) -> bool:
        return self.status == InterviewStatus.IN_PROGRESS


@dataclass(frozen=True)
class InterviewStep:
    key: str
    question: str
    parser: Callable[[str], Any]


@dataclass
class InterviewTurn:
    """Outcome of one interview turn"""
    status: InterviewStatus
    prompt: str
    step_key: Optional[str] = None
    accepted: bool = True
    verdicts: List[EligibilityVerdict] = field(default_factory=list)
    application: Optional[EligibilityApplication] = None


# ============================================================================
# Answer parsing
# ============================================================================

_LEADING_NUMBER = re.compile(r"\d+(?:\.\d+)?|\.\d+")


def parse_number(text: str) -> Optional[Number]:
    """
    Parse a number from free text after dropping everything that is not a
    digit or a decimal point ("₹15,00,000" → 1500000, "Rs. 5000" → 5000,
    ".5" → 0.5).

    Returns:
        int for whole values, float otherwise, None when nothing parses or
        the value is not finite
    """
    # A dot that ends an abbreviation or is not followed by a digit is punctuation
    cleaned = re.sub(r"(?<=[A-Za-z])\.|\.(?!\d)", "", text or "")
    cleaned = re.sub(r"[^\d.]", "", cleaned)
    match = _LEADING_NUMBER.match(cleaned)
    if not match:
        return None
    value = float(match.group(0))
    if not math.isfinite(value):
        return None
    return int(value) if value.is_integer() else value


_EMPLOYMENT_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = (
    ("salaried", re.compile(r"salaried")),
    ("self-employed", re.compile(r"self[\s-]?employed")),
    ("student", re.compile(r"student")),
    ("other", re.compile(r"\bother\b")),
)


def parse_employment_type(text: str) -> Optional[str]:
    lowered = (text or "").lower()
    for category, pattern in _EMPLOYMENT_PATTERNS:
        if pattern.search(lowered):
            return category
    return None


# ============================================================================
# Interview
# ============================================================================

class EligibilityInterview:
    """
    Drives the fixed question list for one session at a time.

    Sessions are plain values owned by the session store; this class only
    mutates the session handed to advance().
    """

    def __init__(self, catalog: LenderCatalog, evaluator: Optional[EligibilityEvaluator] = None):
        self.catalog = catalog
        self.evaluator = evaluator or EligibilityEvaluator(catalog)
        loan_type_ids = ", ".join(catalog.loan_type_ids())
        self.steps: Tuple[InterviewStep, ...] = (
            InterviewStep("loanType", f"Which loan type? ({loan_type_ids})", self._parse_loan_type),
            InterviewStep("amount", "What loan amount do you need? (in ₹)", self._parse_amount),
            InterviewStep("tenure", "Preferred tenure (years)?", self._parse_tenure),
            InterviewStep("monthlyIncome", "Your monthly income (in ₹)?", self._parse_income),
            InterviewStep("creditScore", "Approx. your credit score (e.g., 600, 700)?", self._parse_credit_score),
            InterviewStep("existingEMI", "Existing monthly EMI/outgoings (in ₹). If none, type 0.", self._parse_existing_emi),
            InterviewStep("employmentType", "Employment type: salaried / self-employed / student / other", self._parse_employment),
        )

    # ---------- step parsers ----------

    def _parse_loan_type(self, text: str) -> str:
        loan_type_id = self.catalog.resolve_loan_type_answer(text)
        if loan_type_id is None:
            raise AnswerValidationError(
                "loanType", f"Please pick one of: {', '.join(self.catalog.loan_type_ids())}."
            )
        return loan_type_id

    @staticmethod
    def _parse_amount(text: str) -> Number:
        value = parse_number(text)
        if value is None or value <= 0:
            raise AnswerValidationError("amount", "Please enter the loan amount as a number greater than 0.")
        return value

    @staticmethod
    def _parse_tenure(text: str) -> Number:
        value = parse_number(text)
        if value is None or value <= 0 or value > MAX_TENURE_YEARS:
            raise AnswerValidationError(
                "tenure", f"Please enter a tenure in years, more than 0 and at most {MAX_TENURE_YEARS}."
            )
        return value

    @staticmethod
    def _parse_income(text: str) -> Number:
        value = parse_number(text)
        if value is None or value <= 0:
            raise AnswerValidationError("monthlyIncome", "Please enter your monthly income as a number greater than 0.")
        return value

    @staticmethod
    def _parse_credit_score(text: str) -> Number:
        value = parse_number(text)
        if value is None or not (MIN_CREDIT_SCORE <= value <= MAX_CREDIT_SCORE):
            raise AnswerValidationError(
                "creditScore", f"Credit scores range between {MIN_CREDIT_SCORE} and {MAX_CREDIT_SCORE}."
            )
        return value

    @staticmethod
    def _parse_existing_emi(text: str) -> Number:
        value = parse_number(text)
        if value is None or value < 0:
            raise AnswerValidationError("existingEMI", "Please enter your existing EMIs as a number (0 if none).")
        return value

    @staticmethod
    def _parse_employment(text: str) -> str:
        category = parse_employment_type(text)
        if category is None:
            raise AnswerValidationError(
                "employmentType", "Please answer salaried, self-employed, student or other."
            )
        return category

    # ---------- transitions ----------

    def current_step(self, session: InterviewSession) -> InterviewStep:
        return self.steps[session.step_index]

    def start(self, session: InterviewSession) -> InterviewTurn:
        """NotStarted → InProgress(0), returning the first question"""
        session.step_index = 0
        session.collected_data = {}
        session.status = InterviewStatus.IN_PROGRESS
        first = self.steps[0]
        log_event(logger, "interview_started", component="interview", details={"session_id": session.session_id})
        return InterviewTurn(status=session.status, prompt=first.question, step_key=first.key)

    def advance(self, session: InterviewSession, text: str) -> InterviewTurn:
        """
        Apply one user answer to an in-progress session.

        - "cancel" (trimmed, any case) → Cancelled, nothing evaluated
        - invalid answer → same step re-asked with a hint, session untouched
        - valid answer → stored, next question (or evaluation after the last one)
        """
        if not session.is_active:
            raise ValueError(f"Session {session.session_id} is not in progress ({session.status.value})")

        if (text or "").strip().lower() == CANCEL_KEYWORD:
            session.status = InterviewStatus.CANCELLED
            log_event(
                logger, "interview_cancelled", component="interview",
                details={"session_id": session.session_id, "step_index": session.step_index},
            )
            return InterviewTurn(status=session.status, prompt=CANCELLED_TEXT)

        step = self.current_step(session)
        try:
            value = step.parser(text)
        except AnswerValidationError as e:
            log_event(
                logger, "interview_step_rejected", component="interview",
                details={"session_id": session.session_id, "step": e.step_key},
            )
            return InterviewTurn(
                status=session.status,
                prompt=f"{e.hint} {step.question}",
                step_key=step.key,
                accepted=False,
            )

        session.collected_data[step.key] = value
        session.step_index += 1

        if session.step_index < len(self.steps):
            next_step = self.current_step(session)
            return InterviewTurn(status=session.status, prompt=next_step.question, step_key=next_step.key)

        session.status = InterviewStatus.COMPLETED
        application = EligibilityApplication.from_collected(session.collected_data)
        verdicts = self.evaluator.evaluate(application)
        log_event(
            logger, "interview_completed", component="interview",
            details={
                "session_id": session.session_id,
                "loan_type": application.loan_type_id,
                "lenders": len(verdicts),
                "eligible": sum(1 for v in verdicts if v.eligible),
            },
        )
        return InterviewTurn(
            status=session.status,
            prompt="",
            verdicts=verdicts,
            application=application,
        )
