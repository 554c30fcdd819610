"""On-device provider: WhisperKit CLI transcription, rule-based refinement, ``say`` speech."""

import asyncio
import re
import shutil
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Tuple

import structlog

from ..config.preferences import ServicePreferences
from ..refinement import RefinementMode
from .base import AudioClip, ProviderAdapter
from .errors import InvalidResponse, ServiceUnavailable
from .types import ProviderKind, ServiceKind


logger = structlog.get_logger()

_FILLER_WORDS = re.compile(
    r"(?:,\s*)?\b(?:um+|uh+|erm|er|ah+|hmm+|you know|i mean)\b,?\s*", re.IGNORECASE
)
_LIKE_FILLER = re.compile(r",\s*like,\s*", re.IGNORECASE)
_WHITESPACE = re.compile(r"[ \t]+")
_SPACE_BEFORE_PUNCT = re.compile(r"\s+([,.!?;:])")
_SENTENCE_START = re.compile(r"(^|[.!?]\s+)([a-z])")
_STANDALONE_I = re.compile(r"\bi\b")
# Progress and log lines WhisperKit prints around the transcript
_CLI_NOISE = re.compile(r"^\s*(?:\[.*\]|Transcribing|Loading|Model|Transcription of)", re.IGNORECASE)


def clean_up_text(text: str) -> str:
    """Remove filler words and normalize spacing, capitalization and end punctuation."""
    text = _LIKE_FILLER.sub(", ", text)
    text = _FILLER_WORDS.sub(" ", text)
    text = _WHITESPACE.sub(" ", text)
    text = _SPACE_BEFORE_PUNCT.sub(r"\1", text)
    text = re.sub(r",\s*([.!?])", r"\1", text).strip(" ,")
    if not text:
        return text
    text = _STANDALONE_I.sub("I", text)
    text = _SENTENCE_START.sub(lambda m: m.group(1) + m.group(2).upper(), text)
    if text[-1] not in ".!?":
        text += "."
    return text


def format_email(text: str) -> str:
    body = clean_up_text(text)
    return f"Hi,\n\n{body}\n\nBest regards"


def format_message(text: str) -> str:
    message = clean_up_text(text)
    # Casual messages drop a lone trailing period
    if message.endswith(".") and message.count(".") == 1:
        message = message[:-1]
    return message


class LocalProviderAdapter(ProviderAdapter):
    """
    On-device provider. Needs no credential and is always configured.
    """

    kind = ProviderKind.LOCAL

    def __init__(
        self,
        whisperkit_path: str = "whisperkit-cli",
        whisperkit_model: str = "large-v3_turbo",
        compute_units: str = "cpuAndNeuralEngine",
        say_path: str = "say",
        timeout: float = 120.0,
        credential_store=None,
        events=None,
    ):
        super().__init__(credential_store=credential_store, events=events)
        self.whisperkit_path = whisperkit_path
        self.whisperkit_model = whisperkit_model
        self.compute_units = compute_units
        self.say_path = say_path
        self.timeout = timeout

    def missing_executables(self) -> List[str]:
        return [path for path in (self.whisperkit_path, self.say_path) if not shutil.which(path)]

    async def test_connection(self) -> bool:
        missing = self.missing_executables()
        if missing:
            raise ServiceUnavailable(
                f"Required executables not found: {', '.join(missing)}", provider=self.kind
            )
        return True

    async def transcribe(self, audio: AudioClip, preferences: Optional[ServicePreferences] = None) -> str:
        self._check_audio(audio)

        with tempfile.TemporaryDirectory(prefix="speechbridge-") as tmp:
            audio_path = Path(tmp) / audio.filename
            audio_path.write_bytes(audio.data)

            cmd = [
                self.whisperkit_path,
                "transcribe",
                "--audio-path", str(audio_path),
                "--model", self.whisperkit_model,
                "--audio-encoder-compute-units", self.compute_units,
                "--text-decoder-compute-units", self.compute_units,
            ]
            start = time.time()
            stdout, _ = await self._run(cmd)

        lines = [line.strip() for line in stdout.splitlines()]
        text = " ".join(line for line in lines if line and not _CLI_NOISE.match(line))
        if not text:
            raise InvalidResponse("No speech detected", provider=self.kind)

        logger.info("Local transcription completed",
                    processing_time_ms=(time.time() - start) * 1000,
                    text_length=len(text))
        return text

    async def refine(self, text: str, mode: RefinementMode,
                     preferences: Optional[ServicePreferences] = None) -> str:
        self._check_text(text)
        if mode is RefinementMode.RAW:
            return text
        if mode is RefinementMode.EMAIL:
            return format_email(text)
        if mode is RefinementMode.MESSAGING:
            return format_message(text)
        return clean_up_text(text)

    async def synthesize_speech(self, text: str,
                                preferences: Optional[ServicePreferences] = None) -> bytes:
        preferences = preferences or ServicePreferences()
        voice = preferences.local_tts_voice
        self._check_text(text)
        self._check_model(ServiceKind.TEXT_TO_SPEECH, voice)

        with tempfile.TemporaryDirectory(prefix="speechbridge-") as tmp:
            output_path = Path(tmp) / "speech.aiff"
            text_path = Path(tmp) / "input.txt"
            text_path.write_text(text, encoding="utf-8")
            await self._run([
                self.say_path, "-v", voice, "-o", str(output_path), "-f", str(text_path),
            ])
            if not output_path.exists():
                raise InvalidResponse("Speech synthesizer produced no audio", provider=self.kind)
            return output_path.read_bytes()

    async def _run(self, cmd: List[str]) -> Tuple[str, str]:
        """Run ``cmd`` to completion, killing it on timeout or cancellation."""
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ServiceUnavailable(f"{cmd[0]} not found", provider=self.kind) from e

        logger.debug("Local engine started", pid=process.pid, executable=cmd[0])
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), self.timeout)
        except asyncio.TimeoutError as e:
            raise ServiceUnavailable(
                f"{Path(cmd[0]).name} timed out after {self.timeout:.0f}s", provider=self.kind
            ) from e
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()

        if process.returncode != 0:
            error_output = stderr.decode("utf-8", errors="replace").strip()
            logger.error("Local engine failed", executable=cmd[0],
                         return_code=process.returncode, stderr=error_output[:500])
            raise ServiceUnavailable(
                f"{Path(cmd[0]).name} failed with code {process.returncode}", provider=self.kind
            )
        return stdout.decode("utf-8", errors="replace"), stderr.decode("utf-8", errors="replace")
