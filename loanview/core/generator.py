# ==============================================
# File: loanview/core/generator.py
# Description: Optional LLM text generator for messages the rules cannot classify
# ==============================================

from __future__ import annotations
from typing import Optional, Protocol
import logging

from pydantic import ValidationError

from loanview.core.envelope import ResponseCategory, ResponseEnvelope
from loanview.core.llm_provider import CompletionProvider
from loanview.exceptions import ExternalGeneratorFailure
from loanview.jsonparser import load_json_object
from loanview.models import GeneratorReply

logger = logging.getLogger(__name__)


ADVISOR_SYSTEM_PROMPT = """You are a helpful and friendly Banking Advisor for an app called LoanView. Your goal is to guide users toward the right loan type based on their query.

CONTEXT:
- The user is inside a loan comparison application.
- The user may ask about specific needs (e.g., "laptop", "study abroad"), loan types, interest rates, or eligibility.
- You can suggest the following loan types by setting the "payload" field: {loan_types}.

RESPONSE RULES:
1. Greeting: for "hi", "hello", etc., give a welcoming message. Set category to "welcome" and include a title and a helpful tip.
2. Eligibility check: for "Am I eligible?", "Can I get a loan?", etc., set category to "start_eligibility". Your text should confirm you're starting the check.
3. Loan recommendations: based on the user's need (e.g., "wedding", "macbook", "start a coffee shop"), recommend a specific loan type. Set category to "loan_card" and payload to the loan type id. Explain WHY you are recommending it.
4. Comparisons: if the user asks to compare loans, set category to "comparison_card".
5. General questions about rates or EMI: give general information. Set category to "text".
6. Fallback: if you don't understand, give a helpful fallback message. Set category to "text".

Respond with ONLY a JSON object:
{{"text": "...", "category": "...", "payload": null, "title": null, "tip": null}}"""


class TextGenerator(Protocol):
    """Narrow interface the assembler delegates unclassified messages to"""

    async def generate(self, query: str) -> ResponseEnvelope:
        ...


class LLMTextGenerator:
    """
    Text generator backed by an LLM provider (OpenAI or Gemini).

    Every failure (transport, empty or malformed reply) surfaces as
    ExternalGeneratorFailure; the caller owns the timeout and fallback.
    """

    def __init__(self, provider: CompletionProvider, loan_type_ids: Optional[list] = None, max_tokens: int = 512):
        self.provider = provider
        self.max_tokens = max_tokens
        ids = loan_type_ids or ["home", "auto", "personal", "education", "business", "gadget"]
        self.system_prompt = ADVISOR_SYSTEM_PROMPT.format(
            loan_types=", ".join(f'"{i}"' for i in ids)
        )

    @staticmethod
    def parse_reply(raw: str) -> ResponseEnvelope:
        """
        Validate a raw model reply into an envelope.

        Raises:
            ExternalGeneratorFailure: reply is not a JSON object or misses required fields
        """
        try:
            data = load_json_object(raw)
            reply = GeneratorReply.model_validate(data)
        except (ValueError, ValidationError) as e:
            raise ExternalGeneratorFailure(f"Malformed generator reply: {e}") from e

        category = ResponseCategory.from_label(reply.category)
        if category == ResponseCategory.TEXT and (reply.category or "text").strip().lower() != "text":
            logger.info(f"Generator returned unknown category '{reply.category}', rendering as text")

        return ResponseEnvelope(
            display_text=reply.text,
            category=category,
            payload=reply.payload,
            title=reply.title,
            tip=reply.tip,
        )

    async def generate(self, query: str) -> ResponseEnvelope:
        try:
            raw = await self.provider.async_complete(
                user_prompt=f'USER QUERY: "{query}"',
                system_prompt=self.system_prompt,
                max_tokens=self.max_tokens,
            )
        except ExternalGeneratorFailure:
            raise
        except Exception as e:
            raise ExternalGeneratorFailure(f"Generator call failed: {type(e).__name__}: {e}") from e

        if not raw:
            raise ExternalGeneratorFailure("Generator returned an empty reply")
        return self.parse_reply(raw)
