"""
Unit tests for the AI assistant helpers.
"""

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from portal.assistant import generate_reply, to_chat_messages
from portal.config import ASSISTANT_MAX_MESSAGES
from portal.exceptions import ValidationError


# ── Helpers ──────────────────────────────────────────────────────────

class FakeLLMResponse:
    def __init__(self, content: str):
        self.content = content


class FakeLLM:
    def __init__(self, content: str):
        self._content = content
        self.seen = None

    def invoke(self, messages):
        self.seen = messages
        return FakeLLMResponse(self._content)


# ── Tests ────────────────────────────────────────────────────────────

def test_to_chat_messages_maps_roles():
    msgs = to_chat_messages([
        {"role": "user", "content": "I have a headache"},
        {"role": "assistant", "content": "How long?"},
    ])
    assert isinstance(msgs[0], HumanMessage)
    assert isinstance(msgs[1], AIMessage)


def test_to_chat_messages_keeps_most_recent_turns():
    history = [{"role": "user", "content": f"m{i}"} for i in range(25)]
    msgs = to_chat_messages(history)
    assert len(msgs) == ASSISTANT_MAX_MESSAGES
    assert msgs[-1].content == "m24"


@pytest.mark.parametrize("bad", [
    None, [], "hello", [{"role": "system", "content": "x"}],
    [{"role": "user", "content": ""}], ["hi"],
])
def test_to_chat_messages_rejects_bad_input(bad):
    with pytest.raises(ValidationError):
        to_chat_messages(bad)


def test_generate_reply_prepends_system_prompt():
    llm = FakeLLM("  Drink water and rest.  ")
    reply = generate_reply(llm, [{"role": "user", "content": "headache"}])
    assert reply == "Drink water and rest."
    assert isinstance(llm.seen[0], SystemMessage)
    assert llm.seen[1].content == "headache"
