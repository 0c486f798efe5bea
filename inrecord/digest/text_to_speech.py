"""Digest narration with Play.ht and upload to object storage."""

import asyncio
import math
import os
import re
from datetime import date

import httpx
import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)

PLAYHT_API_URL = "https://api.play.ht/api/v2"
MAX_POLL_ATTEMPTS = 30
POLL_INTERVAL_SECONDS = 2.0
WORDS_PER_MINUTE = 150
STORAGE_BUCKET = "audio"

VOICES = {
    "en": "s3://voice-cloning-zero-shot/d9ff78ba-d016-47f6-b0ef-dd630f59414e/female-cs/manifest.json",
    "fr": "s3://voice-cloning-zero-shot/a0c3d2e5-9f8a-4b7c-8d1e-2f3a4b5c6d7e/french-female/manifest.json",
    "pt": "s3://voice-cloning-zero-shot/b1d4e3f6-0a9b-5c8d-9e2f-3a4b5c6d7e8f/portuguese-br-female/manifest.json",
}

_MARKDOWN_RULES = [
    (re.compile(r"```.*?```", re.DOTALL), ""),
    (re.compile(r"^#{1,6}\s+", re.MULTILINE), ""),
    (re.compile(r"\*\*([^*]+)\*\*"), r"\1"),
    (re.compile(r"\*([^*]+)\*"), r"\1"),
    (re.compile(r"__([^_]+)__"), r"\1"),
    (re.compile(r"\b_([^_]+)_\b"), r"\1"),
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),
    (re.compile(r"`([^`]+)`"), r"\1"),
    (re.compile(r"https?://\S+"), ""),
    (re.compile(r"^[*\-+]\s+", re.MULTILINE), ""),
    (re.compile(r"^\d+\.\s+", re.MULTILINE), ""),
    (re.compile(r"[ \t]{2,}"), " "),
    (re.compile(r"\n{3,}"), "\n\n"),
]


def clean_text(text: str) -> str:
    """Strip markdown syntax and URLs so the narration reads naturally."""
    for pattern, replacement in _MARKDOWN_RULES:
        text = pattern.sub(replacement, text)
    return text.strip()


def estimate_duration(text: str, wpm: int = WORDS_PER_MINUTE) -> int:
    """Spoken length of ``text`` in seconds."""
    words = len(text.split())
    return math.ceil(words / wpm * 60)


class TextToSpeechError(Exception):
    """Audio could not be produced or stored."""


class AudioResult(BaseModel):
    url: str
    duration_seconds: int | None
    file_size_bytes: int


class TextToSpeechService:
    """Creates Play.ht jobs, waits for them and re-hosts the audio."""

    def __init__(
        self,
        api_key: str | None = None,
        user_id: str | None = None,
        storage_url: str | None = None,
        storage_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ):
        self.api_key = api_key or os.getenv("PLAYHT_API_KEY", "")
        self.user_id = user_id or os.getenv("PLAYHT_USER_ID", "")
        self.storage_url = (storage_url or os.getenv("AUDIO_STORAGE_URL", "")).rstrip("/")
        self.storage_key = storage_key or os.getenv("AUDIO_STORAGE_KEY", "")
        self.http_client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(60.0))
        self.poll_interval = poll_interval

    def is_configured(self) -> bool:
        return bool(self.api_key and self.user_id and self.storage_url)

    @property
    def _headers(self) -> dict:
        return {"AUTHORIZATION": self.api_key, "X-USER-ID": self.user_id}

    async def _create_job(self, text: str, voice: str) -> str:
        response = await self.http_client.post(
            f"{PLAYHT_API_URL}/tts",
            headers=self._headers,
            json={
                "text": text,
                "voice": voice,
                "output_format": "mp3",
                "voice_engine": "PlayHT2.0-turbo",
                "sample_rate": 24000,
                "quality": "high",
            },
        )
        if response.is_error:
            raise TextToSpeechError(f"Play.ht API error: {response.status_code} - {response.text}")
        return response.json()["id"]

    async def _poll(self, job_id: str) -> dict:
        """Wait for a job to complete and return its ``output`` block."""
        for _ in range(MAX_POLL_ATTEMPTS):
            response = await self.http_client.get(f"{PLAYHT_API_URL}/tts/{job_id}", headers=self._headers)
            if response.is_error:
                raise TextToSpeechError(f"Failed to check job status: {response.status_code}")

            data = response.json()
            output = data.get("output") or {}
            if data.get("status") == "completed" and output.get("url"):
                return output
            if data.get("status") == "failed":
                raise TextToSpeechError(f"Audio generation failed: {data.get('error', 'Unknown error')}")
            await asyncio.sleep(self.poll_interval)

        raise TextToSpeechError("Audio generation timed out")

    async def _upload(self, audio: bytes, path: str) -> str:
        response = await self.http_client.post(
            f"{self.storage_url}/object/{STORAGE_BUCKET}/{path}",
            headers={
                "Authorization": f"Bearer {self.storage_key}",
                "Content-Type": "audio/mpeg",
                "Cache-Control": "3600",
                "x-upsert": "true",
            },
            content=audio,
        )
        if response.is_error:
            raise TextToSpeechError(f"Failed to upload audio: {response.status_code}")
        return f"{self.storage_url}/object/public/{STORAGE_BUCKET}/{path}"

    async def generate_audio(self, text: str, language: str, week_start: date) -> AudioResult:
        """Narrate ``text`` in ``language`` and return the hosted file.

        Raises:
            TextToSpeechError: If any step fails
        """
        try:
            job_id = await self._create_job(clean_text(text), VOICES[language])
            logger.info("tts_job_created", job_id=job_id, language=language)
            output = await self._poll(job_id)

            download = await self.http_client.get(output["url"])
            if download.is_error:
                raise TextToSpeechError(f"Failed to download audio: {download.status_code}")

            url = await self._upload(download.content, f"digests/{week_start.isoformat()}-{language}.mp3")
        except TextToSpeechError:
            raise
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            raise TextToSpeechError(f"{type(e).__name__}: {e}") from e

        duration = output.get("duration")
        return AudioResult(
            url=url,
            duration_seconds=round(duration) if duration else None,
            file_size_bytes=len(download.content),
        )

    async def generate_all(self, summaries: dict[str, str | None], week_start: date) -> dict:
        """Audio for every available language.

        Returns the ``audio_url_*`` and ``audio_duration_seconds`` fields to
        store on the digest; empty when audio is unavailable.
        """
        if not self.is_configured():
            logger.warning("tts_not_configured")
            return {}

        languages = [lang for lang in VOICES if summaries.get(lang)]
        results = await asyncio.gather(
            *(self.generate_audio(summaries[lang], lang, week_start) for lang in languages),
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, Exception)]
        if failures:
            logger.error(
                "tts_generation_failed",
                week_start=week_start.isoformat(),
                errors=[f"{type(e).__name__}: {e}" for e in failures],
            )
            return {}

        fields = {f"audio_url_{lang}": result.url for lang, result in zip(languages, results)}
        english = dict(zip(languages, results)).get("en")
        duration = english.duration_seconds if english else None
        fields["audio_duration_seconds"] = duration or estimate_duration(clean_text(summaries.get("en") or ""))
        logger.info("tts_generation_completed", languages=languages, duration=fields["audio_duration_seconds"])
        return fields

    async def close(self) -> None:
        await self.http_client.aclose()
