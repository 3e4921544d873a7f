import pytest

from loanview.core.envelope import ResponseCategory
from loanview.core.generator import LLMTextGenerator
from loanview.exceptions import ExternalGeneratorFailure
from loanview.jsonparser import load_json_object


class FakeProvider:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def async_complete(self, user_prompt, system_prompt="", max_tokens=1024, temperature=0.3):
        self.calls.append((user_prompt, system_prompt))
        if self.error is not None:
            raise self.error
        return self.reply


def test_load_json_object_tolerates_model_noise():
    raw = """Sure! Here you go:
```json
{
  'text': 'Try a gadget loan',   // recommendation
  "category": "loan_card",
}
```"""
    assert load_json_object(raw) == {"text": "Try a gadget loan", "category": "loan_card"}


def test_load_json_object_rejects_garbage():
    with pytest.raises(ValueError):
        load_json_object("no json here")
    with pytest.raises(ValueError):
        load_json_object("{not: valid: json}")


async def test_generate_parses_advisor_reply():
    provider = FakeProvider(reply='{"text": "A Gadget Loan suits you.", "type": "loan_card", "data": "gadget", "title": "Gadget Loan"}')
    generator = LLMTextGenerator(provider)

    envelope = await generator.generate("need a drone")

    assert envelope.category == ResponseCategory.LOAN_CARD
    assert envelope.display_text == "A Gadget Loan suits you."
    assert envelope.payload == "gadget"
    assert envelope.title == "Gadget Loan"
    user_prompt, system_prompt = provider.calls[0]
    assert "need a drone" in user_prompt
    assert "LoanView" in system_prompt
    assert '"gadget"' in system_prompt


async def test_unknown_category_renders_as_text():
    generator = LLMTextGenerator(FakeProvider(reply='{"text": "Hmm.", "category": "poem"}'))
    envelope = await generator.generate("write me a poem")
    assert envelope.category == ResponseCategory.TEXT


async def test_missing_category_defaults_to_text():
    generator = LLMTextGenerator(FakeProvider(reply='{"text": "Hello"}'))
    envelope = await generator.generate("hmm")
    assert envelope.category == ResponseCategory.TEXT


@pytest.mark.parametrize("reply", [
    "I cannot answer that",
    '{"category": "text"}',
    '{"text": "   ", "category": "text"}',
    '["text", "category"]',
    "",
])
async def test_malformed_reply_raises(reply):
    generator = LLMTextGenerator(FakeProvider(reply=reply))
    with pytest.raises(ExternalGeneratorFailure):
        await generator.generate("anything")


async def test_transport_error_is_wrapped():
    generator = LLMTextGenerator(FakeProvider(error=ConnectionError("network down")))
    with pytest.raises(ExternalGeneratorFailure, match="network down"):
        await generator.generate("anything")
