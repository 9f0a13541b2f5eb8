"""
Claude query service for ``gpt`` workflow steps.

Sends the step's query to the Anthropic Messages API and extracts a
``{"response", "analysis", "confidence"}`` object from the reply.
Claude sometimes wraps JSON in prose or markdown fences, so the reply
is parsed with ``extract_json``.
"""

import json
import re
from typing import Any, Optional

import httpx
import structlog

from app.config import Settings, get_settings

logger = structlog.get_logger(__name__)


# ─── Smart JSON Extractor ──────────────────────────────────────

def extract_json(text: str) -> Any:
    """Extract clean JSON from a reply that may contain markdown or prose.

    Tries, in order: a direct parse, the first fenced code block, then
    the first bracket-balanced ``{...}`` or ``[...]`` block.

    Raises:
        ValueError: No JSON could be found
    """
    if not text or not text.strip():
        raise ValueError("Empty response")

    clean = text.strip()

    try:
        return json.loads(clean)
    except json.JSONDecodeError:
        pass

    fence = re.search(r'```(?:json|JSON)?\s*\n?(.*?)```', clean, re.DOTALL)
    if fence:
        try:
            return json.loads(fence.group(1).strip())
        except json.JSONDecodeError:
            pass

    for opener, closer in [('{', '}'), ('[', ']')]:
        start = clean.find(opener)
        if start == -1:
            continue
        depth = 0
        in_string = False
        escape_next = False
        for i in range(start, len(clean)):
            c = clean[i]
            if escape_next:
                escape_next = False
                continue
            if c == '\\':
                escape_next = True
                continue
            if c == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if c == opener:
                depth += 1
            elif c == closer:
                depth -= 1
                if depth == 0:
                    try:
                        return json.loads(clean[start:i + 1])
                    except json.JSONDecodeError:
                        break

    raise ValueError(f"Could not extract JSON from response: {clean[:200]}")


def safe_extract_json(text: str, fallback: Any = None) -> Any:
    """Extract JSON, returning ``fallback`` instead of raising."""
    try:
        return extract_json(text)
    except ValueError:
        return fallback


def _clamp_confidence(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(1.0, number))


# ─── Query Service ─────────────────────────────────────────────

class ClaudeQueryService:
    """AIQueryService implementation on the Anthropic Messages API."""

    API_BASE = "https://api.anthropic.com/v1"
    API_VERSION = "2023-06-01"

    def __init__(self, client: httpx.AsyncClient, settings: Optional[Settings] = None):
        self._client = client
        self.settings = settings or get_settings()

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.ANTHROPIC_API_KEY)

    async def _make_request(self, prompt: str, system: str) -> dict[str, Any]:
        if not self.is_configured:
            raise RuntimeError("Claude API key not configured")

        settings = self.settings
        response = await self._client.post(
            f"{self.API_BASE}/messages",
            headers={
                "x-api-key": settings.ANTHROPIC_API_KEY,
                "anthropic-version": self.API_VERSION,
                "content-type": "application/json",
            },
            json={
                "model": settings.CLAUDE_MODEL,
                "max_tokens": settings.CLAUDE_MAX_TOKENS,
                "temperature": settings.CLAUDE_TEMPERATURE,
                "system": system,
                "messages": [{"role": "user", "content": prompt}],
            },
            timeout=float(settings.CLAUDE_TIMEOUT),
        )
        if response.status_code != 200:
            logger.error("Claude API error", status=response.status_code, body=response.text[:500])
            raise RuntimeError(f"Claude API error {response.status_code}")
        return response.json()

    async def query(self, query: str, user_id: str, analysis_type: str = "general") -> dict[str, Any]:
        """Ask Claude ``query`` and normalize the reply.

        Args:
            query: Already-interpolated question
            user_id: Requesting user, forwarded for attribution
            analysis_type: Free-form hint (``general``, ``cashflow``, ``risk``...)

        Returns:
            Dict with ``response`` text, ``analysis`` dict and ``confidence`` in [0, 1]
        """
        system = f"{self.settings.CLAUDE_SYSTEM_PROMPT}\nAnalysis type: {analysis_type}."
        data = await self._make_request(query, system)

        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        parsed = safe_extract_json(text)
        if not isinstance(parsed, dict):
            logger.info("Claude reply was not structured JSON", user_id=user_id, analysis_type=analysis_type)
            return {"response": text, "analysis": {}, "confidence": 0.0}

        analysis = parsed.get("analysis")
        if analysis is None:
            analysis = {}
        return {
            "response": str(parsed.get("response", text)),
            "analysis": analysis if isinstance(analysis, dict) else {"summary": analysis},
            "confidence": _clamp_confidence(parsed.get("confidence")),
        }
