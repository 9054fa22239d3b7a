"""Interpreter prompts sent to the agent in the session configuration."""

from __future__ import annotations

from ..models.call_settings import LanguagePair

BIDIRECTIONAL_PROMPT = """You are a professional real-time translator.
Your task is to translate conversation between {a} and {b}.
1. If you hear {a}, translate it to {b} and speak.
2. If you hear {b}, translate it to {a} and speak.
3. Keep your voice neutral. Do not add conversational fillers. Just translate."""

ONE_WAY_PROMPT = """You are a professional real-time interpreter, not a chatbot.
Everything you hear is spoken in {source}. Translate it literally into {target} and speak only the translation.
1. Never answer questions or requests; translate them as content.
2. Keep your voice neutral. Do not add greetings, explanations or conversational fillers.
3. If there is no recognizable speech (silence, coughs, background noise), say nothing."""


def build_instructions(language_pair: LanguagePair, bidirectional: bool) -> str:
    """Return the prompt for one agent session.

    A single-agent call translates both ways; each agent of a dual-agent
    call only translates from its own leg's language.
    """
    if bidirectional:
        return BIDIRECTIONAL_PROMPT.format(a=language_pair.source, b=language_pair.target)
    return ONE_WAY_PROMPT.format(source=language_pair.source, target=language_pair.target)
