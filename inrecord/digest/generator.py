"""LLM-written weekly digest: English summary, sentiment, highlights and translations."""

import asyncio

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from inrecord.digest.llm_client import LLMClient
from inrecord.models.digest import (
    MAX_HIGHLIGHTS,
    MAX_SUMMARY_LENGTH,
    MIN_SUMMARY_LENGTH,
    GeneratedDigest,
    KeyMetrics,
    Language,
    Sentiment,
    WeeklyStats,
)

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 1.0

DIGEST_SYSTEM_PROMPT = """You are a transparency reporter for inRECORD, a decentralized music label DAO.
Your job is to create a clear, engaging weekly summary of DAO activity for the community.

Style: Professional yet approachable, transparent, data-driven
Tone: Optimistic but realistic, community-focused
Length: 250-350 words
Format: Markdown with headers

Include:
- Overview of proposals (new, approved, funded)
- Voting participation metrics
- Treasury changes (deposits, spending)
- Notable events or milestones
- Community growth stats
- Call to action for next week

Be honest about challenges while celebrating wins.

Return ONLY the markdown summary. Do not include any JSON formatting or additional fields."""

SENTIMENT_SYSTEM_PROMPT = """You are a sentiment analyst for a DAO transparency system.
Classify the overall sentiment of the provided weekly summary into ONE of these categories:

- "optimistic": Strong positive momentum, major wins, high community engagement
- "stable": Steady progress, normal operations, no major changes
- "critical": Significant challenges, low participation, concerning trends
- "mixed": Combination of positive and negative elements

Also extract 3-5 key highlights (brief bullet points) from the summary.

Return a JSON object with:
{"sentiment": "optimistic" | "stable" | "critical" | "mixed", "highlights": ["highlight 1", "highlight 2"]}"""

TRANSLATION_SYSTEM_PROMPT = """You are a professional translator specializing in blockchain and DAO terminology.
Translate the provided text accurately while maintaining the tone, style, and technical accuracy.

Preserve markdown formatting, technical terms (DAO, proposal, treasury), numbers, percentages and URLs.

Return a JSON object with:
{"translated_text": "the translated content"}"""

TRANSLATION_TARGETS = {
    Language.FR: "French (France)",
    Language.PT: "Portuguese (Brazilian)",
}


class SentimentAnalysis(BaseModel):
    sentiment: Sentiment
    highlights: list[str] = Field(default_factory=list, max_length=MAX_HIGHLIGHTS)


class Translation(BaseModel):
    translated_text: str = Field(..., min_length=1)


class SummaryTooShortError(ValueError):
    """The model returned an empty or too short summary."""


def format_stats_prompt(stats: WeeklyStats) -> str:
    """Render weekly statistics as the summary prompt body."""
    t = stats.treasury
    lines = [
        f"Week: {stats.week_start.isoformat()} to {stats.week_end.isoformat()}",
        "",
        "PROPOSALS:",
        f"- New proposals submitted: {stats.proposals.new}",
        f"- Proposals approved: {stats.proposals.approved}",
        f"- Proposals rejected: {stats.proposals.rejected}",
        f"- Proposals funded: {stats.proposals.funded}",
        f"- Total funding allocated: ${stats.proposals.total_funding:g}",
        "",
        "VOTING:",
        f"- Total votes cast: {stats.voting.votes_cast}",
        f"- Unique voters: {stats.voting.unique_voters}",
        f"- Participation rate: {stats.voting.participation_rate * 100:.1f}%",
        "",
        "TREASURY:",
        f"- Deposits: ${t.deposits:g}",
        f"- Withdrawals: ${t.withdrawals:g}",
        f"- Net change: {'+' if t.net_change >= 0 else '-'}${abs(t.net_change):g}",
    ]
    if t.ending_balance:
        lines.append(f"- Ending balance: ${t.ending_balance:g}")
    lines += [
        "",
        "COMMUNITY:",
        f"- New members: {stats.members.new_members}",
        f"- Total members: {stats.members.total_members}",
        f"- Active members: {stats.members.active_members}",
    ]
    return "\n".join(lines)


class DigestGenerator:
    """Turns a week's statistics into a ``GeneratedDigest``."""

    def __init__(self, llm_client: LLMClient, retry_delay: float = RETRY_DELAY_SECONDS):
        self.llm = llm_client
        self.retry_delay = retry_delay

    async def generate_english_summary(self, stats: WeeklyStats) -> str:
        """Summary of at least ``MIN_SUMMARY_LENGTH`` characters.

        Raises:
            RuntimeError: If every attempt fails
        """
        prompt = (
            "Create a weekly digest for inRECORD DAO based on these statistics:\n\n" + format_stats_prompt(stats)
        )
        last_error: Exception | None = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                summary = (
                    await self.llm.generate(prompt, system_prompt=DIGEST_SYSTEM_PROMPT, temperature=0.7)
                ).strip()
                if len(summary) < MIN_SUMMARY_LENGTH:
                    raise SummaryTooShortError("Generated summary is too short or empty")
                return summary[:MAX_SUMMARY_LENGTH]
            except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
                last_error = e
                logger.warning("digest_summary_attempt_failed", attempt=attempt, error=str(e))
                if attempt < MAX_ATTEMPTS:
                    await asyncio.sleep(self.retry_delay)

        raise RuntimeError(f"Failed to generate English summary: {last_error}")

    async def analyze_sentiment(self, summary: str, fallback_highlights: list[str]) -> SentimentAnalysis:
        """Sentiment and highlights.

        Missing highlights are replaced by the computed ones; if the model
        never answers usefully the sentiment falls back to ``stable``.
        """
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                parsed = await self.llm.generate_json(
                    f"Analyze this weekly digest and extract sentiment + highlights:\n\n{summary}",
                    system_prompt=SENTIMENT_SYSTEM_PROMPT,
                    temperature=0.3,
                    max_tokens=500,
                )
                analysis = SentimentAnalysis(
                    sentiment=parsed.get("sentiment"),
                    highlights=list(parsed.get("highlights") or [])[:MAX_HIGHLIGHTS],
                )
                if not analysis.highlights:
                    analysis.highlights = fallback_highlights[:MAX_HIGHLIGHTS]
                return analysis
            except (httpx.HTTPError, KeyError, IndexError, ValueError, ValidationError) as e:
                logger.warning("digest_sentiment_attempt_failed", attempt=attempt, error=str(e))
                if attempt < MAX_ATTEMPTS:
                    await asyncio.sleep(self.retry_delay)

        logger.warning("digest_sentiment_fallback")
        return SentimentAnalysis(sentiment=Sentiment.STABLE, highlights=fallback_highlights[:MAX_HIGHLIGHTS])

    async def translate(self, text: str, language: Language | str) -> str:
        """Translate into ``language`` (French or Portuguese); returns ``text`` unchanged on failure."""
        language = Language(language)
        target = TRANSLATION_TARGETS[language]
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                parsed = await self.llm.generate_json(
                    f"Translate this text to {target}:\n\n{text}",
                    system_prompt=TRANSLATION_SYSTEM_PROMPT,
                    temperature=0.3,
                    max_tokens=1500,
                )
                return Translation.model_validate(parsed).translated_text
            except (httpx.HTTPError, KeyError, IndexError, ValueError, ValidationError) as e:
                logger.warning(
                    "digest_translation_attempt_failed", language=language.value, attempt=attempt, error=str(e)
                )
                if attempt < MAX_ATTEMPTS:
                    await asyncio.sleep(self.retry_delay)

        logger.warning("digest_translation_fallback", language=language.value)
        return text

    async def generate(self, stats: WeeklyStats, computed_highlights: list[str]) -> GeneratedDigest:
        logger.info("digest_generation_started", week_start=stats.week_start.isoformat())

        summary = await self.generate_english_summary(stats)
        analysis = await self.analyze_sentiment(summary, computed_highlights)
        summary_fr = await self.translate(summary, Language.FR)
        summary_pt = await self.translate(summary, Language.PT)

        digest = GeneratedDigest(
            summary_en=summary,
            summary_fr=summary_fr,
            summary_pt=summary_pt,
            sentiment=analysis.sentiment,
            highlights=analysis.highlights,
            key_metrics=KeyMetrics(
                proposals=stats.proposals, voting=stats.voting, treasury=stats.treasury, members=stats.members
            ),
            generated_by=self.llm.model,
        )
        logger.info("digest_generation_completed", week_start=stats.week_start.isoformat(), sentiment=digest.sentiment)
        return digest
