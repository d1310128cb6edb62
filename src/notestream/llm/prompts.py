"""Prompt text for the cloud providers and the local model templates."""

from __future__ import annotations

from notestream.types import Provider

OPENAI_SYSTEM_PROMPT = """\
You are a helpful AI assistant for a sticky note application.
CRITICAL INSTRUCTION: When the user asks to create, update, or delete a note, \
you MUST use the provided tools (`create_note`, `update_note`, `delete_note`).
DO NOT rewrite the note content in your text response. Only use the tool.
If you use a tool, your text response should be empty or a very brief \
confirmation (e.g. 'Done').
Only output long text if you are answering a general question without \
modifying a note."""

GOOGLE_EDITOR_INSTRUCTION = (
    "SYSTEM: You are a text editor. Your goal is to update the note content "
    "based on the user request. Output ONLY the full updated note content. "
    "Do not output conversational text."
)

# Finnish text-editor rules for the Poro instruct model
_PORO_SYSTEM = (
    "Olet muistiolapun tekstieditori. Päivitä lapun sisältö käyttäjän pyynnön mukaan. \n"
    "SÄÄNNÖT:\n"
    "1. Kirjoita AINA suomeksi.\n"
    "2. Käytä Markdown-muotoilua (otsikot, listat, lihavointi jne.).\n"
    "3. Tulosta VAIN päivitetty muistiolapun sisältö.\n"
    "4. Älä kirjoita mitään muuta (ei selityksiä, ei tervehdyksiä)."
)


def user_message(prompt: str, context: str) -> str:
    """User turn shared by the OpenAI and Anthropic requests."""
    return f"Context (current card content):\n{context}\n\nUser request: {prompt}"


def google_prompt(prompt: str, context: str) -> str:
    return (
        f"{GOOGLE_EDITOR_INSTRUCTION}\n\n"
        f"Context (current content):\n{context}\n\nUser request: {prompt}"
    )


def local_prompt(provider: Provider, prompt: str, context: str) -> str:
    """Instruction template for a local model."""
    if provider is Provider.PORO2_8B:
        # Llama 3.1 instruct header format
        return (
            "<|start_header_id|>system<|end_header_id|>\n\n"
            f"{_PORO_SYSTEM}<|eot_id|>"
            "<|start_header_id|>user<|end_header_id|>\n\n"
            f"Nykyinen sisältö:\n{context}\n\nKäyttäjän pyyntö: {prompt}<|eot_id|>"
            "<|start_header_id|>assistant<|end_header_id|>\n\n"
        )
    if provider is Provider.FINCHAT_SUMMARY:
        # Plain Q/A layout; the summarization model echoes anything richer
        if not context:
            return f"Kysymys: {prompt}\n\nVastaus: "
        return f"Konteksti: {context}\n\nKysymys: {prompt}\n\nVastaus: "
    return f"Context: {context}\n\nUser: {prompt}\n\nAssistant:"
