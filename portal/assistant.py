"""
AI medical assistant – LLM initialisation and chat replies.
"""

from typing import Dict, List

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from portal.config import ASSISTANT_MAX_MESSAGES, MODEL_NAME, get_env
from portal.exceptions import ValidationError

SYSTEM_PROMPT = (
    "You are a medical information assistant inside a patient portal. "
    "Give general, educational health information in plain language. "
    "Do not diagnose or prescribe; advise contacting a doctor or emergency "
    "services when symptoms sound serious."
)

_MESSAGE_TYPES = {"user": HumanMessage, "assistant": AIMessage}


def init_llm() -> ChatOpenAI:
    """Initialise and return the ChatOpenAI instance."""
    _ = get_env("OPENAI_API_KEY")  # fail early if missing
    llm = ChatOpenAI(model=MODEL_NAME, temperature=0.3)
    print(f"[init] Using LLM model: {MODEL_NAME}")
    return llm


def to_chat_messages(messages) -> List:
    """Validate a client conversation and keep only the most recent turns."""
    if not isinstance(messages, list) or not messages:
        raise ValidationError("Invalid message format.")

    converted = []
    for m in messages[-ASSISTANT_MAX_MESSAGES:]:
        if not isinstance(m, dict):
            raise ValidationError("Invalid message format.")
        cls = _MESSAGE_TYPES.get(m.get("role"))
        content = m.get("content")
        if cls is None or not isinstance(content, str) or not content.strip():
            raise ValidationError("Invalid message format.")
        converted.append(cls(content=content))
    return converted


def generate_reply(llm: ChatOpenAI, messages: List[Dict[str, str]]) -> str:
    chat = [SystemMessage(content=SYSTEM_PROMPT)] + to_chat_messages(messages)
    resp = llm.invoke(chat)
    return resp.content.strip()
