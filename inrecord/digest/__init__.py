"""Weekly AI digest generation and distribution."""

from inrecord.digest.distributor import DigestDistributor
from inrecord.digest.generator import DigestGenerator
from inrecord.digest.llm_client import LLMClient
from inrecord.digest.pipeline import DigestPipeline, get_digest_for_week
from inrecord.digest.text_to_speech import TextToSpeechService

__all__ = [
    "DigestDistributor",
    "DigestGenerator",
    "DigestPipeline",
    "LLMClient",
    "TextToSpeechService",
    "get_digest_for_week",
]
