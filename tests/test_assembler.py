import asyncio

import pytest

from loanview.config import Settings
from loanview.core.assembler import UNAVAILABLE_TEXT, ResponseAssembler, build_assembler
from loanview.core.classifier import FALLBACK_TEXT
from loanview.core.envelope import ResponseCategory, ResponseEnvelope
from loanview.core.interview import CANCELLED_TEXT
from loanview.exceptions import ExternalGeneratorFailure

ANSWERS = ["home", "1500000", "20", "80000", "720", "5000", "salaried"]


class FakeGenerator:
    def __init__(self, envelope=None, error=None, delay=0.0):
        self.envelope = envelope
        self.error = error
        self.delay = delay
        self.calls = 0

    async def generate(self, query):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.envelope


def _with_generator(catalog, generator, timeout=1.0, retry_timeout=0.5):
    return ResponseAssembler(
        catalog, generator=generator, generator_timeout=timeout, generator_retry_timeout=retry_timeout
    )


async def test_laptop_bypasses_interview(assembler):
    envelope = await assembler.submit_utterance("conv_1", "I need a laptop loan")

    assert envelope.category == ResponseCategory.LOAN_CARD
    assert envelope.payload == {"loanTypeId": "gadget"}
    assert assembler.sessions.active_count() == 0


async def test_eligibility_flow_end_to_end(assembler):
    start = await assembler.submit_utterance("conv_1", "am I eligible for a loan")

    assert start.category == ResponseCategory.START_ELIGIBILITY
    assert "Which loan type?" in start.display_text
    assert start.payload["stepKey"] == "loanType"
    assert assembler.sessions.active_count() == 1

    replies = [await assembler.submit_utterance("conv_1", answer) for answer in ANSWERS]

    for step, reply in enumerate(replies[:-1], start=2):
        assert reply.category == ResponseCategory.TEXT
        assert reply.payload["accepted"] is True
        assert reply.payload["step"] == step

    result = replies[-1]
    assert result.category == ResponseCategory.ELIGIBILITY_RESULT
    assert result.payload["loanTypeId"] == "home"
    verdicts = result.payload["verdicts"]
    assert [v["lenderId"] for v in verdicts] == ["apex", "horizon", "summit"]
    assert all(v["eligible"] for v in verdicts)
    assert "**Apex Financial**" in result.display_text
    assert assembler.sessions.active_count() == 0


async def test_interview_owns_turns_while_in_progress(assembler):
    await assembler.submit_utterance("conv_1", "am I eligible")
    reply = await assembler.submit_utterance("conv_1", "I need a laptop loan")

    assert reply.category == ResponseCategory.TEXT
    assert reply.payload["accepted"] is False
    assert reply.payload["stepKey"] == "loanType"
    assert reply.display_text.endswith("Which loan type? (home, auto, personal, education, business, gadget)")


async def test_invalid_answer_reprompts_same_question(assembler):
    await assembler.submit_utterance("conv_1", "am I eligible")
    await assembler.submit_utterance("conv_1", "home")
    reply = await assembler.submit_utterance("conv_1", "abc")

    assert reply.payload == {"stepKey": "amount", "step": 2, "totalSteps": 7, "accepted": False}
    assert "What loan amount do you need?" in reply.display_text


async def test_cancel_ends_interview_without_results(assembler):
    await assembler.submit_utterance("conv_1", "am I eligible")
    await assembler.submit_utterance("conv_1", "home")
    reply = await assembler.submit_utterance("conv_1", "CANCEL")

    assert reply.display_text == CANCELLED_TEXT
    assert reply.category == ResponseCategory.TEXT
    assert reply.payload is None
    assert assembler.sessions.active_count() == 0

    after = await assembler.submit_utterance("conv_1", "hello")
    assert after.category == ResponseCategory.WELCOME


async def test_conversations_are_independent(assembler):
    await assembler.submit_utterance("a", "am I eligible")
    reply_b = await assembler.submit_utterance("b", "home")
    reply_a = await assembler.submit_utterance("a", "home")

    assert reply_b.category == ResponseCategory.LOAN_CARD
    assert reply_a.payload["stepKey"] == "amount"


async def test_comparison_card_carries_snapshot(assembler):
    envelope = await assembler.submit_utterance("conv_1", "compare lenders for me")

    assert envelope.category == ResponseCategory.COMPARISON_CARD
    assert envelope.payload["loanTypeId"] == "home"
    assert envelope.payload["amount"] == 1_000_000
    assert envelope.payload["tenureMonths"] == 240
    rates = [row["annualRatePercent"] for row in envelope.payload["offers"]]
    assert rates == sorted(rates)
    assert envelope.payload["offers"][0]["bestOffer"] is True


async def test_unclassified_without_generator_falls_back(assembler):
    envelope = await assembler.submit_utterance("conv_1", "asdfgh")
    assert envelope.display_text == FALLBACK_TEXT
    assert envelope.category == ResponseCategory.TEXT


async def test_generator_reply_used_for_unclassified(catalog):
    generator = FakeGenerator(envelope=ResponseEnvelope(display_text="Drones count as gadgets.", category=ResponseCategory.LOAN_CARD, payload="gadget"))
    assembler = _with_generator(catalog, generator)

    envelope = await assembler.submit_utterance("conv_1", "can a drone be financed?")

    assert generator.calls == 1
    assert envelope.display_text == "Drones count as gadgets."
    assert envelope.payload == {"loanTypeId": "gadget"}


@pytest.mark.parametrize("payload", [{"loanTypeId": "yacht"}, "yacht", 42])
async def test_generator_loan_card_with_unknown_loan_type_drops_payload(catalog, payload):
    generator = FakeGenerator(envelope=ResponseEnvelope(display_text="Boats are fun.", category=ResponseCategory.LOAN_CARD, payload=payload))
    assembler = _with_generator(catalog, generator)

    envelope = await assembler.submit_utterance("conv_1", "can a boat be financed?")

    assert envelope.category == ResponseCategory.LOAN_CARD
    assert envelope.payload is None


async def test_generator_loan_card_dict_payload_is_kept_when_known(catalog):
    generator = FakeGenerator(envelope=ResponseEnvelope(display_text="Try a gadget loan.", category=ResponseCategory.LOAN_CARD, payload={"loanTypeId": "gadget"}))
    assembler = _with_generator(catalog, generator)

    envelope = await assembler.submit_utterance("conv_1", "can a drone be financed?")

    assert envelope.payload == {"loanTypeId": "gadget"}


async def test_generator_cannot_claim_eligibility_results(catalog):
    generator = FakeGenerator(envelope=ResponseEnvelope(
        display_text="You are eligible everywhere!",
        category=ResponseCategory.ELIGIBILITY_RESULT,
        payload={"verdicts": [{"lenderId": "apex", "eligible": True}]},
    ))
    assembler = _with_generator(catalog, generator)

    envelope = await assembler.submit_utterance("conv_1", "could a bank lend me money?")

    assert envelope.category == ResponseCategory.TEXT
    assert envelope.payload is None
    assert envelope.display_text == "You are eligible everywhere!"


async def test_generator_not_called_for_classified_or_blank_text(catalog):
    generator = FakeGenerator(envelope=ResponseEnvelope(display_text="unused"))
    assembler = _with_generator(catalog, generator)

    await assembler.submit_utterance("conv_1", "hello")
    await assembler.submit_utterance("conv_1", "   ")

    assert generator.calls == 0


async def test_generator_timeout_retries_once_then_falls_back(catalog):
    generator = FakeGenerator(envelope=ResponseEnvelope(display_text="too late"), delay=1.0)
    assembler = _with_generator(catalog, generator, timeout=0.05, retry_timeout=0.02)

    envelope = await assembler.submit_utterance("conv_1", "asdfgh")

    assert envelope.display_text == FALLBACK_TEXT
    assert generator.calls == 2


async def test_generator_retry_can_be_disabled(catalog):
    generator = FakeGenerator(error=ExternalGeneratorFailure("bad json"))
    assembler = _with_generator(catalog, generator, retry_timeout=0)

    envelope = await assembler.submit_utterance("conv_1", "asdfgh")

    assert envelope.display_text == FALLBACK_TEXT
    assert generator.calls == 1


@pytest.mark.parametrize("error", [ExternalGeneratorFailure("malformed"), ConnectionError("down"), RuntimeError("boom")])
async def test_generator_errors_never_surface(catalog, error):
    generator = FakeGenerator(error=error)
    assembler = _with_generator(catalog, generator)

    envelope = await assembler.submit_utterance("conv_1", "asdfgh")

    assert envelope.display_text == FALLBACK_TEXT
    assert generator.calls == 2


async def test_generator_can_start_the_interview(catalog):
    generator = FakeGenerator(envelope=ResponseEnvelope(display_text="Let's check.", category=ResponseCategory.START_ELIGIBILITY))
    assembler = _with_generator(catalog, generator)

    envelope = await assembler.submit_utterance("conv_1", "could a bank lend me money?")

    assert envelope.category == ResponseCategory.START_ELIGIBILITY
    assert "Which loan type?" in envelope.display_text
    assert assembler.sessions.active_count() == 1


async def test_unexpected_error_is_contained(assembler, monkeypatch):
    def explode(text):
        raise RuntimeError("classifier bug")

    monkeypatch.setattr(assembler.classifier, "classify", explode)
    envelope = await assembler.submit_utterance("conv_1", "hello")
    assert envelope.display_text == UNAVAILABLE_TEXT

    monkeypatch.undo()
    envelope = await assembler.submit_utterance("conv_1", "hello")
    assert envelope.category == ResponseCategory.WELCOME


def test_build_assembler_without_api_key_runs_rule_based(monkeypatch):
    monkeypatch.delenv("LLM_API_KEY", raising=False)
    config = Settings(_env_file=None, llm_provider="openai", llm_api_key=None, session_ttl_seconds=60)

    assembler = build_assembler(config)

    assert assembler.generator is None
    assert assembler.sessions.ttl_seconds == 60
    assert assembler.default_comparison_loan_type == "home"


def test_build_assembler_with_generator_disabled():
    config = Settings(_env_file=None, generator_enabled=False, llm_api_key="sk-test")
    assert build_assembler(config).generator is None
