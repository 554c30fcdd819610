"""
Speechbridge - Multi-provider AI service orchestration.

Routes transcription, text refinement and text-to-speech requests to a local
on-device engine or to remote providers (OpenAI, OpenRouter, Google Cloud,
ElevenLabs), with secure credential storage, provider health tracking and a
configurable fallback hierarchy.
"""

__version__ = "1.0.0"
