# ==============================================
# File: loanview/core/classifier.py
# Description: Rule-based scenario/intent classifier for advisor chat
# ==============================================
from __future__ import annotations
from typing import Optional, Tuple, List
from dataclasses import dataclass, field
from enum import Enum
import re
import logging

from loanview.catalog import LenderCatalog
from loanview.core.envelope import ResponseCategory, ResponseEnvelope
from loanview.exceptions import UnknownLoanType

logger = logging.getLogger(__name__)


class ResultKind(str, Enum):
    SCENARIO = "scenario"
    INTENT = "intent"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class ScenarioRule:
    """
    A recognised life situation mapped to a loan recommendation.

    Attributes:
        id: Scenario identifier (e.g. "tech_gear")
        loan_type_id: Recommended loan type
        title: Card title
        text: Recommendation and rationale shown to the user
        patterns: Regexes that must ALL match the normalized text
    """
    id: str
    loan_type_id: str
    title: str
    text: str
    patterns: Tuple[str, ...]
    _compiled: Tuple[re.Pattern, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_compiled", tuple(re.compile(p) for p in self.patterns))

    def matches(self, text: str) -> bool:
        return all(p.search(text) for p in self._compiled)


# Shared building blocks for two-part detectors
_STUDY = r"\b(stud(y|ies|ying)|university|universities|college|masters?|mba|phd|degree|course|admission|tuition)\b"
_DESTINATION = (
    r"\b(abroad|overseas|foreign|international|usa|u\.s\.|uk|canada|australia|germany|europe|"
    r"ireland|new zealand|singapore)\b"
)
_BUSINESS = (
    r"\b(business(es)?|shop|store|company|firm|factory|restaurant|cafe|coffee shop|startup|outlet|"
    r"enterprise|venture|msme|boutique|clinic)\b"
)
_PROPERTY = r"\b(house|home|flat|apartment|property|plot|villa|bungalow)\b"

# Device names that only mean "gadget purchase" next to a buying or financing cue
_GENERIC_DEVICE = r"(phones?|mobiles?|computers?|pcs?|television|tv|headphones)"
_GADGET_CUE = r"(buy|buying|purchase|purchasing|new|upgrade|upgrading|financ\w*|emis?)"
_TECH_GEAR = (
    r"\b(laptops?|macbooks?|iphones?|smartphones?|tablets?|ipads?|cameras?|gaming (console|pc)|"
    r"playstation|xbox|smart ?tv|gadgets?)\b"
    rf"|\b{_GADGET_CUE}\b.*\b{_GENERIC_DEVICE}\b"
    rf"|\b{_GENERIC_DEVICE}\b.*\b{_GADGET_CUE}\b"
    rf"|\bfor (a |an |my )?(new )?{_GENERIC_DEVICE}\b"
)


# Ordered by priority: only the first matching scenario is reported.
SCENARIO_RULES: Tuple[ScenarioRule, ...] = (
    ScenarioRule(
        id="study_abroad",
        loan_type_id="education",
        title="Education Loan for studies abroad",
        text=(
            "For studying abroad, an **Education Loan** is the right fit. It can cover tuition, living "
            "costs and travel, usually carries lower rates than a personal loan, and repayment typically "
            "starts only after the course ends. Interest paid may also qualify for a tax deduction."
        ),
        patterns=(_DESTINATION, _STUDY),
    ),
    ScenarioRule(
        id="tech_gear",
        loan_type_id="gadget",
        title="Gadget Loan for your new device",
        text=(
            "For a laptop, phone or other electronics, a **Gadget Loan** works best: quick approval, "
            "short tenures and, with some lenders, 0% EMI schemes. It costs far less than carrying the "
            "amount on a credit card."
        ),
        patterns=(_TECH_GEAR,),
    ),
    ScenarioRule(
        id="wedding",
        loan_type_id="personal",
        title="Personal Loan for your wedding",
        text=(
            "Wedding expenses are best financed with a **Personal Loan**. It needs no collateral, the "
            "money can be used for any wedding cost (venue, jewellery, travel), and fixed EMIs make the "
            "budget predictable."
        ),
        patterns=(r"\b(wedding|marriage|marry|marrying|shaadi|engagement)\b",),
    ),
    ScenarioRule(
        id="medical",
        loan_type_id="personal",
        title="Personal Loan for medical expenses",
        text=(
            "For medical bills or a planned surgery, a **Personal Loan** can be disbursed quickly without "
            "collateral. Check first whether your health insurance covers part of the cost."
        ),
        patterns=(r"\b(medical|hospital|hospitali[sz]ation|surgery|treatment)\b",),
    ),
    ScenarioRule(
        id="business_expansion",
        loan_type_id="business",
        title="Business Loan for expansion",
        text=(
            "To grow an existing business, a **Business Loan** is designed for exactly this: funding a new "
            "branch, machinery, inventory or working capital. Lenders will look at your business vintage "
            "and turnover, so keep recent statements handy."
        ),
        patterns=(
            r"\b(expand|expanding|expansion|grow|growing|scale|scaling|second (branch|outlet|store)|"
            r"new branch|working capital|inventory|machinery|equipment)\b",
            _BUSINESS,
        ),
    ),
    ScenarioRule(
        id="business_new",
        loan_type_id="business",
        title="Business Loan to start your venture",
        text=(
            "To start a new business, look at a **Business Loan** (including start-up and MSME schemes). "
            "A clear business plan and cost estimate will strengthen the application; some schemes need "
            "no collateral for smaller amounts."
        ),
        patterns=(
            r"\b(start|starting|startup|launch|launching|open|opening|set up|setting up|new)\b",
            _BUSINESS,
        ),
    ),
    ScenarioRule(
        id="home_purchase",
        loan_type_id="home",
        title="Home Loan for your new home",
        text=(
            "Buying or building a home calls for a **Home Loan**: the lowest rates among retail loans, "
            "tenures up to 30 years, and tax benefits on both principal and interest."
        ),
        patterns=(r"\b(buy|buying|purchase|purchasing|build|building|construct|constructing)\b", _PROPERTY),
    ),
    ScenarioRule(
        id="home_renovation",
        loan_type_id="home",
        title="Home Loan top-up for renovation",
        text=(
            "For renovation or repairs, ask about a **Home Loan** top-up or home-improvement loan. Rates "
            "are close to regular home loan rates and well below a personal loan."
        ),
        patterns=(r"\b(renovat\w*|repair\w*|remodel\w*|interiors?|extension)\b", _PROPERTY),
    ),
    ScenarioRule(
        id="vehicle_purchase",
        loan_type_id="auto",
        title="Auto Loan for your vehicle",
        text=(
            "For a car or two-wheeler, an **Auto Loan** is the natural choice: the vehicle itself is the "
            "security, so rates are lower than a personal loan and up to 90% of the on-road price can be "
            "financed."
        ),
        patterns=(
            r"\b(buy|buying|purchase|purchasing|new|used|second[- ]hand|upgrade)\b",
            r"\b(car|bike|motorcycle|motorbike|scooter|two[- ]wheeler|suv|vehicle|ev)\b",
        ),
    ),
    ScenarioRule(
        id="higher_education",
        loan_type_id="education",
        title="Education Loan for your studies",
        text=(
            "For college or course fees, an **Education Loan** offers lower rates than other unsecured "
            "loans and a moratorium until the course is completed."
        ),
        patterns=(_STUDY,),
    ),
    ScenarioRule(
        id="travel",
        loan_type_id="personal",
        title="Personal Loan for travel",
        text=(
            "A holiday can be funded with a **Personal Loan**. Keep the tenure short so that the trip does "
            "not outlive its repayments."
        ),
        patterns=(r"\b(vacation|holiday|trip|travel|tour|honeymoon)\b",),
    ),
    ScenarioRule(
        id="debt_consolidation",
        loan_type_id="personal",
        title="Personal Loan to consolidate debt",
        text=(
            "To consolidate expensive debt, a **Personal Loan** at a lower rate can replace several credit "
            "card or loan dues with one EMI. Compare the total cost, including foreclosure charges."
        ),
        patterns=(
            r"\b(consolidat\w*|credit card (debt|bills?|dues)|pay off (my )?(debts?|loans?)|multiple loans)\b",
        ),
    ),
)


# Generic intents, evaluated independently of scenarios
INTENT_PATTERNS = {
    "greeting": r"\b(hi|hii+|hello|hey|hiya|namaste|greetings|good (morning|afternoon|evening))\b",
    "eligibility": r"\b(eligib\w*|qualify|qualif\w*|can i get|am i able to get|will i get|approved?)\b",
    "comparison": (
        r"\b(compare|comparing|comparison|versus|vs|which (bank|lender)|best (rate|bank|lender|offer|deal)s?|"
        r"cheapest|lowest rates?)\b"
    ),
    "rate_inquiry": r"\b(interest|rates?|roi|apr|percent(age)?)\b",
    "emi_inquiry": r"\b(emis?|installments?|instalments?|monthly payments?|repayments?)\b",
}


WELCOME_TITLE = "Welcome to LoanView"
WELCOME_TEXT = (
    "Hello! I am your Banking Advisor. I can help you find the right loan (home, auto, personal, "
    "education, business or gadget), compare lender rates and check your eligibility. "
    "How may I assist you today?"
)
WELCOME_TIP = "Try: \"Am I eligible for a loan?\" or \"I need a laptop loan\"."

START_ELIGIBILITY_TEXT = "Sure, let's check your eligibility. I'll ask a few quick questions (type 'cancel' anytime to stop)."

FALLBACK_TEXT = (
    "I'm not sure I understood that. You can ask me about loan types, interest rates or EMIs, "
    "tell me what you need the money for, or type \"am I eligible\" to check your eligibility."
)

EMI_EXPLAINER = (
    "EMI (Equated Monthly Installment) is the fixed amount you pay every month; it depends on the "
    "loan amount, the interest rate and the tenure. A longer tenure lowers the EMI but raises the "
    "total interest paid."
)


@dataclass(frozen=True)
class ClassificationResult:
    """
    Classifier output for one utterance.

    Attributes:
        kind: scenario | intent | unclassified
        identifier: Scenario id or intent id (None when unclassified)
        category: Rendering category for the reply
        text: Reply text
        loan_type_id: Recommended / referenced loan type
        lender_id: Referenced lender (lender rate quotes)
        rate_percent: Quoted rate (lender rate quotes)
    """
    kind: ResultKind
    identifier: Optional[str]
    category: ResponseCategory
    text: str
    loan_type_id: Optional[str] = None
    lender_id: Optional[str] = None
    rate_percent: Optional[float] = None
    title: Optional[str] = None
    tip: Optional[str] = None

    def to_envelope(self) -> ResponseEnvelope:
        payload = None
        if self.category in (ResponseCategory.LOAN_CARD, ResponseCategory.COMPARISON_CARD):
            payload = {"loanTypeId": self.loan_type_id}
        elif self.lender_id is not None:
            payload = {
                "lenderId": self.lender_id,
                "loanTypeId": self.loan_type_id,
                "ratePercent": self.rate_percent,
            }
        return ResponseEnvelope(
            display_text=self.text,
            category=self.category,
            payload=payload,
            title=self.title,
            tip=self.tip,
        )


def normalize_text(text: str) -> str:
    """Lower-case and collapse whitespace"""
    return re.sub(r"\s+", " ", (text or "").lower()).strip()


def _fmt_rate(rate: float) -> str:
    return f"{rate:.2f}%"


def _fmt_years(years: float) -> str:
    return f"{years:g}"


class ScenarioClassifier:
    """
    Deterministic classifier: scenarios first, then lender/loan-type lookups,
    then generic intents, then the clarification fallback.

    Stateless apart from the read-only catalog; the same text always yields
    the same result.
    """

    def __init__(
        self,
        catalog: LenderCatalog,
        scenarios: Tuple[ScenarioRule, ...] = SCENARIO_RULES,
        default_comparison_loan_type: str = "home",
    ):
        self.catalog = catalog
        self.scenarios = scenarios
        self.default_comparison_loan_type = default_comparison_loan_type
        self._intents = {name: re.compile(pattern) for name, pattern in INTENT_PATTERNS.items()}

    # ---------- detectors ----------

    def detect_scenario(self, text: str) -> Optional[ScenarioRule]:
        """First scenario (in priority order) whose detector fires"""
        normalized = normalize_text(text)
        for rule in self.scenarios:
            if rule.matches(normalized):
                return rule
        return None

    def detect_intents(self, text: str) -> List[str]:
        """All generic intents present in the text, in evaluation order"""
        normalized = normalize_text(text)
        return [name for name, pattern in self._intents.items() if pattern.search(normalized)]

    # ---------- responses ----------

    def _lender_rate(self, lender_id: str, loan_type_id: str) -> ClassificationResult:
        lender = self.catalog.get_lender(lender_id)
        loan_type = self.catalog.get_loan_type(loan_type_id)
        try:
            offer = self.catalog.get_offer(lender_id, loan_type_id)
        except UnknownLoanType:
            others = [l.name for l, _ in self.catalog.offers_for(loan_type_id)]
            text = f"{lender.name} does not offer a {loan_type.label}."
            if others:
                text += f" It is available from: {', '.join(others)}."
            return ClassificationResult(
                kind=ResultKind.INTENT,
                identifier="lender_rate",
                category=ResponseCategory.TEXT,
                text=text,
                loan_type_id=loan_type_id,
                lender_id=lender.id,
            )

        text = (
            f"{lender.name} offers a {loan_type.label} at {_fmt_rate(offer.annual_rate_percent)} p.a. "
            f"for up to {_fmt_years(offer.max_tenure_years)} years"
        )
        if offer.min_credit_score > 0:
            text += f" (minimum credit score {offer.min_credit_score})."
        else:
            text += " (no minimum credit score)."
        return ClassificationResult(
            kind=ResultKind.INTENT,
            identifier="lender_rate",
            category=ResponseCategory.TEXT,
            text=text,
            loan_type_id=loan_type_id,
            lender_id=lender.id,
            rate_percent=offer.annual_rate_percent,
        )

    def _loan_type_card(self, loan_type_id: str) -> ClassificationResult:
        loan_type = self.catalog.get_loan_type(loan_type_id)
        offers = self.catalog.offers_for(loan_type_id)
        text = f"A **{loan_type.label}** could be right for you. {loan_type.description}".strip()
        if offers:
            best_lender, best_offer = min(offers, key=lambda pair: pair[1].annual_rate_percent)
            text += (
                f" Rates start at {_fmt_rate(best_offer.annual_rate_percent)} p.a. "
                f"({best_lender.name})."
            )
        return ClassificationResult(
            kind=ResultKind.INTENT,
            identifier="loan_type_inquiry",
            category=ResponseCategory.LOAN_CARD,
            text=text,
            loan_type_id=loan_type_id,
            title=loan_type.label,
        )

    def general_rates_text(self) -> str:
        lines = ["Indicative annual interest rates from our partner lenders:"]
        for lt in self.catalog.loan_types:
            rates = [offer.annual_rate_percent for _, offer in self.catalog.offers_for(lt.id)]
            if not rates:
                continue
            low, high = min(rates), max(rates)
            span = _fmt_rate(low) if low == high else f"{_fmt_rate(low)} - {_fmt_rate(high)}"
            lines.append(f"- {lt.label}: {span}")
        lines.append("")
        lines.append(EMI_EXPLAINER)
        lines.append("Your actual rate depends on your credit score, income and the lender.")
        return "\n".join(lines)

    # ---------- entry point ----------

    def classify(self, text: str) -> ClassificationResult:
        """
        Classify one utterance.

        Decision order (first match wins):
            1. scenario detectors (priority order)
            2. lender + loan type → that lender's rate, or "not offered"
            3. loan type only → generic loan-type card
            4. greeting → welcome
            5. eligibility → start the eligibility interview
            6. comparison → comparison card for the default loan type
            7. rate / EMI → general rates information
            8. unclassified → clarification prompt

        Examples:
            >>> classifier.classify("I need a laptop loan").identifier
            'tech_gear'
            >>> classifier.classify("am I eligible for a loan").category
            <ResponseCategory.START_ELIGIBILITY: 'start_eligibility'>
        """
        normalized = normalize_text(text)

        scenario = self.detect_scenario(normalized)
        if scenario is not None:
            logger.info(f"Classifier matched scenario → {scenario.id}")
            return ClassificationResult(
                kind=ResultKind.SCENARIO,
                identifier=scenario.id,
                category=ResponseCategory.LOAN_CARD,
                text=scenario.text,
                loan_type_id=scenario.loan_type_id,
                title=scenario.title,
            )

        loan_type_id = self.catalog.find_loan_type(normalized)
        lender = self.catalog.find_lender(normalized)

        if lender is not None and loan_type_id is not None:
            logger.info(f"Classifier matched lender rate → {lender.id}/{loan_type_id}")
            return self._lender_rate(lender.id, loan_type_id)

        if loan_type_id is not None:
            logger.info(f"Classifier matched loan type → {loan_type_id}")
            return self._loan_type_card(loan_type_id)

        intents = set(self.detect_intents(normalized))

        if "greeting" in intents:
            return ClassificationResult(
                kind=ResultKind.INTENT,
                identifier="greeting",
                category=ResponseCategory.WELCOME,
                text=WELCOME_TEXT,
                title=WELCOME_TITLE,
                tip=WELCOME_TIP,
            )

        if "eligibility" in intents:
            return ClassificationResult(
                kind=ResultKind.INTENT,
                identifier="eligibility",
                category=ResponseCategory.START_ELIGIBILITY,
                text=START_ELIGIBILITY_TEXT,
            )

        if "comparison" in intents:
            loan_type = self.catalog.get_loan_type(self.default_comparison_loan_type)
            return ClassificationResult(
                kind=ResultKind.INTENT,
                identifier="comparison",
                category=ResponseCategory.COMPARISON_CARD,
                text=f"Here is how our partner lenders compare for a {loan_type.label}, lowest rate first.",
                loan_type_id=loan_type.id,
                title=f"{loan_type.label} comparison",
            )

        if "rate_inquiry" in intents or "emi_inquiry" in intents:
            identifier = "rate_inquiry" if "rate_inquiry" in intents else "emi_inquiry"
            return ClassificationResult(
                kind=ResultKind.INTENT,
                identifier=identifier,
                category=ResponseCategory.TEXT,
                text=self.general_rates_text(),
            )

        logger.info("Classifier found no match → unclassified")
        return ClassificationResult(
            kind=ResultKind.UNCLASSIFIED,
            identifier=None,
            category=ResponseCategory.TEXT,
            text=FALLBACK_TEXT,
        )
