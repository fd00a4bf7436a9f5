"""LLM advisor (Anthropic) + gateway that falls back to the rule engine."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Protocol

import structlog
from anthropic import AsyncAnthropic
from pydantic import ValidationError

from agentic_trader.models.decision import DECISION_ADAPTER, Decision
from agentic_trader.prompt_builder import PromptBuilder

if TYPE_CHECKING:
    from agentic_trader.config import Settings
    from agentic_trader.decision_engine import RuleBasedDecisionEngine
    from agentic_trader.models.context import DecisionContext

logger = structlog.get_logger()

ADVISOR_SYSTEM_PROMPT = """You are an autonomous trading agent managing a USDC treasury
split across an active agent account and a reserve treasury account, plus one
perpetual futures market. Maximize risk-adjusted returns. Avoid churn: do not
open and close positions on noise. Default to HOLD if uncertain.
Respond ONLY with a single JSON object matching the output_format."""


class AdvisorError(Exception):
    """Advisor unreachable or returned something that is not a valid decision."""


class AdvisorService(Protocol):
    async def decide(self, context: DecisionContext) -> Decision: ...


class AnthropicAdvisor:
    """Single Anthropic call per cycle. Raises AdvisorError on any failure, never retries."""

    def __init__(self, settings: Settings, prompt_builder: PromptBuilder | None = None) -> None:
        self.settings = settings
        self.prompt_builder = prompt_builder or PromptBuilder(
            asset_symbol=settings.ASSET_SYMBOL, max_leverage=settings.MAX_LEVERAGE
        )

    async def decide(self, context: DecisionContext) -> Decision:
        prompt = self.prompt_builder.build_decision_prompt(context)
        text = await self._call(prompt)
        return self._parse_decision(text)

    async def _call(self, prompt: str) -> str:
        """Low-level Anthropic API call (no SDK retries)."""
        try:
            client = AsyncAnthropic(
                api_key=self.settings.ANTHROPIC_API_KEY,
                base_url=self.settings.ANTHROPIC_BASE_URL,
                max_retries=0,
            )
            response = await client.messages.create(
                model=self.settings.ADVISOR_MODEL,
                max_tokens=self.settings.ADVISOR_MAX_TOKENS,
                temperature=0.2,
                system=ADVISOR_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            raise AdvisorError(f"Advisor call failed: {e}") from e

        if not response.content:
            raise AdvisorError("Advisor returned no content")
        text = (getattr(response.content[0], "text", "") or "").strip()
        if not text:
            raise AdvisorError("Advisor returned empty text")
        logger.info("advisor_call", model=self.settings.ADVISOR_MODEL, chars=len(text))
        return text

    def _parse_decision(self, text: str) -> Decision:
        """Parse the response text into a validated decision."""
        data = self._extract_json(text)
        if data is None:
            logger.warning("advisor_no_json", raw_text=text[:200])
            raise AdvisorError("No JSON object in advisor response")

        data = self._normalize(data)
        try:
            return DECISION_ADAPTER.validate_python(data)
        except ValidationError as e:
            logger.warning("advisor_invalid_decision", raw_text=text[:200], errors=e.error_count())
            raise AdvisorError(f"Invalid advisor decision: {e}") from e

    @staticmethod
    def _normalize(data: dict) -> dict:
        """Accept legacy field names: `amount` as perp size, `market_outlook`."""
        data = dict(data)
        action = str(data.get("action", "")).strip().upper()
        data["action"] = action
        if action in ("OPEN_LONG", "OPEN_SHORT") and "size" not in data and "amount" in data:
            data["size"] = data["amount"]
        for key in ("amount", "size", "leverage", "confidence"):
            if data.get(key) is None:
                data.pop(key, None)
        return data

    @staticmethod
    def _extract_json(text: str) -> dict | None:
        """Try to extract a JSON object from text."""
        try:
            data = json.loads(text)
            if isinstance(data, dict):
                return data
        except json.JSONDecodeError:
            pass

        try:
            start = text.index("{")
            end = text.rindex("}") + 1
            data = json.loads(text[start:end])
            if isinstance(data, dict):
                return data
        except (ValueError, json.JSONDecodeError):
            pass

        return None


class AdvisorGateway:
    """Advisor decision with bounded timeout; the rule engine answers on any failure."""

    def __init__(
        self,
        settings: Settings,
        rules: RuleBasedDecisionEngine,
        advisor: AdvisorService | None = None,
    ) -> None:
        self.settings = settings
        self.rules = rules
        self.advisor = advisor

    async def decide(self, context: DecisionContext) -> tuple[Decision, str]:
        """Returns (decision, source) where source is 'advisor' or 'rules'."""
        if self.advisor is None:
            return self.rules.decide(context), "rules"

        timeout = self.settings.ADVISOR_TIMEOUT_SECONDS
        try:
            decision = await asyncio.wait_for(self.advisor.decide(context), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("advisor_timeout", timeout=timeout)
        except AdvisorError as e:
            logger.warning("advisor_error", error=str(e))
        except Exception as e:
            logger.warning("advisor_unexpected_error", error=str(e))
        else:
            logger.info(
                "advisor_decision",
                action=decision.action,
                confidence=decision.confidence,
                outlook=decision.outlook,
            )
            return decision, "advisor"

        decision = self.rules.decide(context)
        logger.info("rule_fallback_decision", action=decision.action, reason=decision.reason)
        return decision, "rules"
