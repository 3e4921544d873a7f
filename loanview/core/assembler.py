# ==============================================
# File: loanview/core/assembler.py
# Description: Per-turn entry point combining classifier, interview and generator
# ==============================================

from __future__ import annotations
from typing import Any, Dict, List, Optional
import asyncio
import logging

from loanview.catalog import LenderCatalog, get_default_catalog
from loanview.config import Settings, settings as default_settings
from loanview.core.classifier import FALLBACK_TEXT, ResultKind, ScenarioClassifier
from loanview.core.envelope import ResponseCategory, ResponseEnvelope
from loanview.core.generator import LLMTextGenerator, TextGenerator
from loanview.core.interview import EligibilityInterview, InterviewSession, InterviewStatus, InterviewTurn
from loanview.core.llm_provider import build_llm_provider
from loanview.core.session_store import SessionStore
from loanview.exceptions import ExternalGeneratorFailure, UnknownLoanType
from loanview.logging_config import TraceContext, log_event
from loanview.services.comparison import RateComparisonService
from loanview.services.eligibility import EligibilityApplication, EligibilityVerdict

logger = logging.getLogger(__name__)

UNAVAILABLE_TEXT = "The advisor is temporarily unavailable. Please try again shortly."


def _fmt_amount(value: float) -> str:
    return f"₹{value:,.0f}"


class ResponseAssembler:
    """
    Turns one user message into one ResponseEnvelope.

    Routing per turn:
        1. Session with an interview in progress → interview step
        2. Otherwise → rule-based classifier
        3. Unclassified, non-blank text → optional generator (timeout, one retry, fallback)

    The user never sees a raw error: failures become the clarification
    text (generator) or the "temporarily unavailable" message (anything else).
    """

    def __init__(
        self,
        catalog: LenderCatalog,
        generator: Optional[TextGenerator] = None,
        sessions: Optional[SessionStore] = None,
        generator_timeout: float = 8.0,
        generator_retry_timeout: float = 3.0,
        default_comparison_loan_type: str = "home",
        comparison_amount: float = 1_000_000,
        comparison_tenure_months: int = 240,
    ):
        self.catalog = catalog
        self.default_comparison_loan_type = catalog.get_loan_type(default_comparison_loan_type).id
        self.classifier = ScenarioClassifier(
            catalog, default_comparison_loan_type=self.default_comparison_loan_type
        )
        self.interview = EligibilityInterview(catalog)
        self.comparison = RateComparisonService(catalog)
        self.sessions = sessions or SessionStore()
        self.generator = generator
        self.generator_timeout = generator_timeout
        self.generator_retry_timeout = generator_retry_timeout
        self.comparison_amount = comparison_amount
        self.comparison_tenure_months = comparison_tenure_months

    # ---------- entry point ----------

    async def submit_utterance(self, session_id: str, text: str) -> ResponseEnvelope:
        """
        Process one user message for a conversation.

        Args:
            session_id: Conversation ID scoping the eligibility interview
            text: Raw user message

        Returns:
            ResponseEnvelope (never raises)
        """
        with TraceContext(session_id=session_id):
            log_event(logger, "utterance_received", component="assembler", details={"length": len(text or "")})
            try:
                return await self._handle_turn(session_id, text or "")
            except Exception as e:
                logger.exception(f"Turn failed for session {session_id}: {e}")
                return ResponseEnvelope(display_text=UNAVAILABLE_TEXT, category=ResponseCategory.TEXT)

    async def _handle_turn(self, session_id: str, text: str) -> ResponseEnvelope:
        session = self.sessions.get(session_id)
        if session is not None and session.is_active:
            return self._interview_turn(session, text)

        result = self.classifier.classify(text)
        log_event(
            logger, "classified", component="classifier",
            details={"kind": result.kind.value, "identifier": result.identifier, "category": result.category.value},
        )

        if result.kind == ResultKind.UNCLASSIFIED and text.strip() and self.generator is not None:
            envelope = self._from_generator(await self._generate(text))
        else:
            envelope = result.to_envelope()

        return self._finish(session_id, envelope)

    # ---------- interview ----------

    def _interview_turn(self, session: InterviewSession, text: str) -> ResponseEnvelope:
        turn = self.interview.advance(session, text)

        if turn.status == InterviewStatus.IN_PROGRESS:
            return ResponseEnvelope(
                display_text=turn.prompt,
                category=ResponseCategory.TEXT,
                payload=self._progress(session, turn),
            )

        self.sessions.discard(session.session_id)

        if turn.status == InterviewStatus.CANCELLED:
            return ResponseEnvelope(display_text=turn.prompt, category=ResponseCategory.TEXT)

        return self._result_envelope(turn.application, turn.verdicts)

    def _progress(self, session: InterviewSession, turn: InterviewTurn) -> Dict[str, Any]:
        return {
            "stepKey": turn.step_key,
            "step": session.step_index + 1,
            "totalSteps": len(self.interview.steps),
            "accepted": turn.accepted,
        }

    def _result_envelope(self, application: EligibilityApplication, verdicts: List[EligibilityVerdict]) -> ResponseEnvelope:
        loan_type = self.catalog.get_loan_type(application.loan_type_id)
        header = (
            f"Eligibility for a {loan_type.label} of {_fmt_amount(application.amount)} "
            f"over {application.tenure_years:g} years:"
        )

        if not verdicts:
            text = f"{header}\nNone of our partner lenders currently offer a {loan_type.label}."
        else:
            lines = [header]
            for verdict in verdicts:
                emi = (
                    _fmt_amount(verdict.estimated_monthly_installment)
                    if verdict.estimated_monthly_installment is not None else "n/a"
                )
                if verdict.eligible:
                    lines.append(
                        f"- **{verdict.lender_name}**: eligible at {verdict.offered_rate_percent:.2f}% p.a., "
                        f"estimated EMI {emi}"
                    )
                else:
                    lines.append(
                        f"- **{verdict.lender_name}**: not eligible ({verdict.offered_rate_percent:.2f}% p.a., "
                        f"estimated EMI {emi}). " + " ".join(verdict.reasons)
                    )
            eligible = sum(1 for v in verdicts if v.eligible)
            lines.append(f"You qualify with {eligible} of {len(verdicts)} lenders.")
            text = "\n".join(lines)

        return ResponseEnvelope(
            display_text=text,
            category=ResponseCategory.ELIGIBILITY_RESULT,
            payload={
                "loanTypeId": loan_type.id,
                "verdicts": [v.to_dict() for v in verdicts],
            },
            title="Your eligibility results",
        )

    # ---------- classifier / generator replies ----------

    def _finish(self, session_id: str, envelope: ResponseEnvelope) -> ResponseEnvelope:
        """Attach what a category needs: the first question or the comparison snapshot"""
        if envelope.category == ResponseCategory.START_ELIGIBILITY:
            session = self.sessions.start(session_id)
            turn = self.interview.start(session)
            envelope.display_text = f"{envelope.display_text}\n\n{turn.prompt}"
            envelope.payload = self._progress(session, turn)

        elif envelope.category == ResponseCategory.COMPARISON_CARD:
            loan_type_id = self._payload_loan_type(envelope.payload) or self.default_comparison_loan_type
            rows = self.comparison.compare_offers(
                loan_type_id, self.comparison_amount, self.comparison_tenure_months
            )
            envelope.payload = {
                "loanTypeId": loan_type_id,
                "amount": self.comparison_amount,
                "tenureMonths": self.comparison_tenure_months,
                "offers": [row.to_dict() for row in rows],
            }

        elif envelope.category == ResponseCategory.LOAN_CARD:
            loan_type_id = self._payload_loan_type(envelope.payload)
            envelope.payload = {"loanTypeId": loan_type_id} if loan_type_id else None

        return envelope

    def _payload_loan_type(self, payload: Any) -> Optional[str]:
        """Loan type id carried by a payload (plain id or {"loanTypeId": ...}), if it is in the catalog"""
        candidate = payload.get("loanTypeId") if isinstance(payload, dict) else payload
        if not isinstance(candidate, str):
            return None
        try:
            return self.catalog.get_loan_type(candidate).id
        except UnknownLoanType:
            return None

    @staticmethod
    def _from_generator(envelope: ResponseEnvelope) -> ResponseEnvelope:
        """Eligibility results only come from a completed interview"""
        if envelope.category == ResponseCategory.ELIGIBILITY_RESULT:
            envelope.category = ResponseCategory.TEXT
            envelope.payload = None
        return envelope

    async def _generate(self, text: str) -> ResponseEnvelope:
        budgets = [self.generator_timeout]
        if self.generator_retry_timeout and self.generator_retry_timeout > 0:
            budgets.append(self.generator_retry_timeout)

        for attempt, budget in enumerate(budgets, start=1):
            try:
                envelope = await asyncio.wait_for(self.generator.generate(text), timeout=budget)
                log_event(logger, "generator_replied", component="generator", details={"attempt": attempt})
                return envelope
            except asyncio.TimeoutError:
                reason = f"timed out after {budget}s"
            except ExternalGeneratorFailure as e:
                reason = str(e)
            except Exception as e:
                reason = f"{type(e).__name__}: {e}"

            log_event(
                logger, "generator_failed", component="generator",
                details={"attempt": attempt, "reason": reason}, level="WARNING",
            )

        return ResponseEnvelope(display_text=FALLBACK_TEXT, category=ResponseCategory.TEXT)


def build_assembler(config: Optional[Settings] = None) -> ResponseAssembler:
    """
    Build an engine from settings.

    Without a usable LLM configuration the engine runs rule-based only and
    unclassified messages get the clarification text.
    """
    config = config or default_settings
    catalog = get_default_catalog(config.catalog_path)

    generator: Optional[TextGenerator] = None
    if config.generator_enabled:
        try:
            provider = build_llm_provider(config)
            generator = LLMTextGenerator(provider, loan_type_ids=catalog.loan_type_ids())
        except (RuntimeError, ImportError) as e:
            logger.warning(f"Text generator disabled: {e}")

    return ResponseAssembler(
        catalog,
        generator=generator,
        sessions=SessionStore(ttl_seconds=config.session_ttl_seconds),
        generator_timeout=config.generator_timeout_seconds,
        generator_retry_timeout=config.generator_retry_timeout_seconds,
        default_comparison_loan_type=config.default_comparison_loan_type,
        comparison_amount=config.comparison_amount,
        comparison_tenure_months=config.comparison_tenure_months,
    )
