"""
Work item classifier.
Sends message content to OpenAI and turns the JSON reply into an ItemAnalysis.
"""

import asyncio
import json
from typing import Any

import openai
from openai import AsyncOpenAI

from workos.config import settings
from workos.infrastructure.observability.logging import get_logger
from workos.models.domain.work_item_domain import ItemAnalysis

logger = get_logger(__name__)

URGENT_KEYWORDS = ("urgent", "asap", "deadline", "critical")
IGNORE_KEYWORDS = ("unsubscribe", "marketing", "newsletter")

SYSTEM_PROMPT = """### Role
You triage workplace communications (email and chat) for a busy knowledge worker.

### Classification
- urgent: explicit deadlines, client escalations, manager requests, system alerts
- fyi: project updates, meeting notes, informational content, reports
- ignore: marketing email, automated notifications, spam

### Output
Return ONLY valid JSON with exactly these keys:
{
  "classification": "urgent" | "fyi" | "ignore",
  "summary": "15-20 word summary: WHO needs WHAT by WHEN",
  "action_items": ["concrete next steps"],
  "sentiment": "positive" | "neutral" | "negative",
  "urgency_score": 1-5,
  "effort_estimate": "quick" | "medium" | "long",
  "deadline": "today" | "this_week" | "next_week" | "no_deadline",
  "context_tags": ["projects, clients, tools"],
  "stakeholders": ["people or email addresses involved"],
  "business_impact": "high" | "medium" | "low",
  "follow_up_needed": true | false
}
"""

_LABELS = {
    "classification": ("urgent", "fyi", "ignore"),
    "sentiment": ("positive", "neutral", "negative"),
    "effort_estimate": ("quick", "medium", "long"),
    "deadline": ("today", "this_week", "next_week", "no_deadline"),
    "business_impact": ("high", "medium", "low"),
}


class ClassificationError(Exception):
    """Raised when the classifier API cannot produce an analysis."""

    def __init__(self, message: str, api_error: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.api_error = api_error
        self.recoverable = recoverable


def normalize_label(field: str, value: Any) -> str | None:
    """
    Map a free-form label onto the allowed values of `field`.

    Handles decorated labels such as "🔥 Urgent", "Quick (2-5min)" or
    "This Week". Returns None when nothing matches.
    """
    if not isinstance(value, str):
        return None
    text = value.strip().lower().replace("-", " ").replace("_", " ")
    for allowed in _LABELS[field]:
        if allowed.replace("_", " ") in text:
            return allowed
    return None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(entry).strip() for entry in value if str(entry).strip()]


def _urgency(value: Any) -> int:
    if isinstance(value, bool):
        return 2
    try:
        score = round(float(value))
    except (TypeError, ValueError):
        return 2
    return min(max(score, 1), 5)


def analysis_from_payload(payload: dict[str, Any]) -> ItemAnalysis:
    """Build an ItemAnalysis from a (possibly partial) model reply, with defaults per field."""
    defaults = ItemAnalysis()
    fields: dict[str, Any] = {}

    for field in _LABELS:
        fields[field] = normalize_label(field, payload.get(field)) or getattr(defaults, field)

    summary = payload.get("summary")
    fields["summary"] = summary.strip() if isinstance(summary, str) else ""
    fields["urgency_score"] = _urgency(payload.get("urgency_score"))
    fields["action_items"] = _string_list(payload.get("action_items"))
    fields["context_tags"] = _string_list(payload.get("context_tags"))
    fields["stakeholders"] = _string_list(payload.get("stakeholders"))
    fields["follow_up_needed"] = payload.get("follow_up_needed") is True

    return ItemAnalysis(**fields)


def fallback_analysis(content: str, source_type: str) -> ItemAnalysis:
    """Keyword heuristic used when the model reply cannot be parsed."""
    text = content.lower()
    is_urgent = any(keyword in text for keyword in URGENT_KEYWORDS)
    is_ignorable = any(keyword in text for keyword in IGNORE_KEYWORDS)

    if is_ignorable:
        classification, urgency, impact = "ignore", 1, "low"
    elif is_urgent:
        classification, urgency, impact = "urgent", 4, "high"
    else:
        classification, urgency, impact = "fyi", 2, "medium"

    return ItemAnalysis(
        classification=classification,
        summary=f"{source_type} communication requiring review and classification",
        action_items=["Review content", "Determine appropriate action"],
        sentiment="neutral",
        urgency_score=urgency,
        effort_estimate="quick" if classification == "urgent" else "medium",
        deadline="today" if classification == "urgent" else "this_week",
        context_tags=[source_type, "unprocessed"],
        stakeholders=[],
        business_impact=impact,
        follow_up_needed=not is_ignorable,
    )


class WorkItemClassifier:
    """OpenAI-backed classifier for work items."""

    def __init__(self, client: AsyncOpenAI | None = None, max_retries: int | None = None):
        self.max_retries = max_retries or settings.CLASSIFIER_MAX_RETRIES
        self.client = client
        if self.client is None and settings.OPENAI_API_KEY:
            self.client = AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=settings.CLASSIFIER_TIMEOUT_SECONDS,
            )
            logger.info("OpenAI classifier initialized", model=settings.OPENAI_MODEL)

    async def classify(self, content: str, source_type: str) -> ItemAnalysis:
        """
        Classify one message.

        Returns:
            ItemAnalysis, falling back to the keyword heuristic when the model
            reply is not usable JSON or no API key is configured

        Raises:
            ClassificationError: If the API call fails after all retries
        """
        if self.client is None:
            logger.warning("Classifier not configured, using heuristic", source_type=source_type)
            return fallback_analysis(content, source_type)

        user_message = f"Source: {source_type.upper()}\n\nAnalyze this content:\n{content}"
        raw_result = await self._call_openai_with_retry(user_message)

        try:
            payload = json.loads(raw_result)
        except json.JSONDecodeError as e:
            logger.warning(
                "Classifier returned invalid JSON, using heuristic",
                error=str(e),
                raw_result=raw_result[:200],
            )
            return fallback_analysis(content, source_type)

        if not isinstance(payload, dict):
            logger.warning("Classifier returned non-object JSON, using heuristic")
            return fallback_analysis(content, source_type)

        return analysis_from_payload(payload)

    async def _call_openai_with_retry(self, user_message: str) -> str:
        """Call OpenAI with retry on rate limits, timeouts and server errors."""
        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                response = await self.client.chat.completions.create(
                    model=settings.OPENAI_MODEL,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": user_message},
                    ],
                    max_tokens=settings.OPENAI_MAX_TOKENS,
                    temperature=settings.OPENAI_TEMPERATURE,
                    response_format={"type": "json_object"},
                )

                if not response.choices or not response.choices[0].message.content:
                    raise ClassificationError("Empty response from OpenAI API")

                return response.choices[0].message.content.strip()

            except openai.RateLimitError as e:
                last_error = e
                wait_time = min(2**attempt, 30)
                logger.warning("OpenAI rate limit hit, retrying", attempt=attempt + 1, wait_time=wait_time)
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(wait_time)

            except openai.APITimeoutError as e:
                last_error = e
                logger.warning("OpenAI API timeout, retrying", attempt=attempt + 1)

            except openai.APIStatusError as e:
                last_error = e
                if 400 <= e.status_code < 500:
                    logger.error("OpenAI client error (not retrying)", error=str(e))
                    break
                logger.warning("OpenAI API error, retrying", attempt=attempt + 1, error=str(e))

            except (openai.APIError, ClassificationError) as e:
                last_error = e
                logger.warning(
                    "OpenAI call failed, retrying",
                    attempt=attempt + 1,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        logger.error(
            "OpenAI API call failed after all retries",
            max_retries=self.max_retries,
            final_error=str(last_error),
        )
        raise ClassificationError(
            f"Classifier failed after {self.max_retries} attempts",
            api_error=str(last_error),
        ) from last_error
