"""Refinement modes and their prompt templates."""

from enum import Enum


class RefinementMode(str, Enum):
    """How transcribed text should be rewritten."""

    RAW = "raw"
    CLEANUP = "cleanup"
    EMAIL = "email"
    MESSAGING = "messaging"

    @property
    def display_name(self) -> str:
        return {
            RefinementMode.RAW: "Raw Transcription",
            RefinementMode.CLEANUP: "Clean-up Mode",
            RefinementMode.EMAIL: "Email Mode",
            RefinementMode.MESSAGING: "Messaging Mode",
        }[self]

    @property
    def system_prompt(self) -> str:
        return SYSTEM_PROMPTS[self]


SYSTEM_PROMPTS = {
    RefinementMode.RAW: "Return the text exactly as provided without any changes.",
    RefinementMode.CLEANUP: (
        "You are a text editor. Clean up the following transcribed text by:\n"
        "- Removing filler words (um, uh, like, you know)\n"
        "- Fixing grammar and punctuation\n"
        "- Maintaining the original meaning and tone\n"
        "- Ensuring proper capitalization\n"
        "Return only the cleaned text without explanations."
    ),
    RefinementMode.EMAIL: (
        "You are a professional email writer. Transform the following transcribed "
        "text into a well-formatted email by:\n"
        "- Adding appropriate greeting and closing\n"
        "- Structuring content with proper paragraphs\n"
        "- Using professional language and tone\n"
        "- Including proper punctuation and formatting\n"
        "Return only the email text without explanations."
    ),
    RefinementMode.MESSAGING: (
        "You are a casual messaging assistant. Transform the following transcribed "
        "text into a conversational message by:\n"
        "- Making it concise and friendly\n"
        "- Using casual but clear language\n"
        "- Removing unnecessary formality\n"
        "- Ensuring it sounds natural for messaging\n"
        "Return only the message text without explanations."
    ),
}


def build_user_prompt(text: str) -> str:
    """User turn sent alongside the mode's system prompt."""
    return f"Please refine the following transcribed text:\n\n{text}"
