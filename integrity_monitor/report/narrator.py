"""ReportNarrator: optional LLM-based phrasing of a report summary.

The narrator takes a finished IntegrityReport and produces a short
reviewer-facing paragraph.  The LLM is used ONLY to rephrase the
structured facts already in the report; it cannot add claims, judge the
subject, or reference data not present.

Stored artifacts never go through the narrator; they stay deterministic.
If no LLM is configured or the call fails, the deterministic narrative
text is returned instead.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Callable

from integrity_monitor.config import settings
from integrity_monitor.report.generator import MAX_SCORE, IntegrityReport
from integrity_monitor.report.render import format_timestamp, render_text

logger = logging.getLogger(__name__)

LLMFactory = Callable[[], Any]

_SUMMARY_PROMPT = """You are summarising an automated remote-assessment integrity log
for a human reviewer.

STRICT RULES:
- Use ONLY the information provided below
- Do NOT speculate about intent or accuse the subject of cheating
- Do NOT invent events, counts or times
- Keep tone neutral and factual
- 2-4 short paragraphs

Subject: {subject}
Session ID: {session_id}
Started: {started_at}
Ended: {ended_at}
Integrity score: {score}/{max_score}
Event counts:
{counts_text}

Produce the summary.  Mention that the score is derived from automated
detections that a reviewer should verify against the recording."""


def default_llm_factory():
    """Create a Gemini chat model from environment config."""
    from langchain_google_genai import ChatGoogleGenerativeAI

    api_key = os.environ.get("GOOGLE_API_KEY") or os.environ.get("INTEGRITY_GEMINI_API_KEY")
    if not api_key:
        raise RuntimeError(
            "Gemini API key not found. Set GOOGLE_API_KEY or INTEGRITY_GEMINI_API_KEY "
            "in your environment variables."
        )

    return ChatGoogleGenerativeAI(
        model=settings.gemini_model,
        google_api_key=api_key,
        temperature=settings.gemini_temperature,
        max_output_tokens=settings.gemini_max_output_tokens,
    )


class ReportNarrator:
    """Optional LLM-powered summary with a deterministic fallback."""

    def __init__(self, llm_factory: LLMFactory | None = None) -> None:
        self._llm_factory = llm_factory

    @property
    def enabled(self) -> bool:
        return self._llm_factory is not None

    def narrate(self, report: IntegrityReport) -> str:
        if self._llm_factory is None:
            return render_text(report)
        try:
            return self._narrate_with_llm(report)
        except Exception as exc:
            logger.warning("LLM narration failed (%s), using fallback", exc)
            return render_text(report)

    def _narrate_with_llm(self, report: IntegrityReport) -> str:
        counts_text = "\n".join(f"  - {kind}: {n}" for kind, n in report.counts.items())
        prompt = _SUMMARY_PROMPT.format(
            subject=report.subject or "N/A",
            session_id=report.session_id,
            started_at=format_timestamp(report.started_at),
            ended_at=format_timestamp(report.ended_at),
            score=report.score,
            max_score=MAX_SCORE,
            counts_text=counts_text or "  - none",
        )

        llm = self._llm_factory()
        response = llm.invoke(prompt)
        text = response.content if hasattr(response, "content") else str(response)
        return text.strip()
