"""
LLM Provider
=============

JSON-in / JSON-out access to a language model for the AI orchestrator,
wrapped in a per-firm monthly budget, bounded retries and token/cost
accounting.

Layers:
    LLMProvider       — the interface the orchestrator depends on
    BudgetedProvider  — budget gate, retry loop, usage tracking; subclasses
                        implement one raw completion call (``_complete``)
    OpenAIProvider    — chat completions with JSON response format

Budget:
    Before every attempt the projected spend (firm's spend this calendar
    month, looked up once per run, plus this run's cost so far) is
    compared to the ceiling. Reaching it raises BudgetExceededError and
    latches: every later call fails immediately, without retrying, until
    ``reset()`` starts the next run.

Retry:
    Any other failure (transport error, empty content, invalid JSON) is
    retried immediately, up to ``max_retries`` additional attempts; the
    last error is re-raised.

Usage:
    provider = build_provider(config, firm_id="firm-9", monthly_spend=store.monthly_spend)
    data = await provider.generate_json(prompt_id, system_prompt, user_prompt, task_input)
    provider.usage_summary().cost_usd
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_none,
)

from lexintake.ai.prompts import PromptIds, build_user_content
from lexintake.config import LexIntakeConfig, ModelPricing
from lexintake.errors import BudgetExceededError, ProviderNotConfiguredError
from lexintake.schemas.run import ModelUsage, UsageSummary
from lexintake.utils import month_start_utc

logger = logging.getLogger("lexintake.ai.provider")

MonthlySpendFn = Callable[[Optional[str], datetime], Awaitable[float]]

_EXTRACTION_PROMPTS = frozenset({PromptIds.EXTRACT, PromptIds.CONSISTENCY})


class LLMProvider(ABC):
    """Interface consumed by the AI task orchestrator."""

    provider_name: str = "base"
    model_name: str = "per-task"

    @abstractmethod
    async def generate_json(
        self,
        prompt_id: str,
        system_prompt: str,
        user_prompt: str,
        task_input: dict[str, Any],
    ) -> Any:
        """
        Run one prompt and return the decoded JSON response.

        Raises:
            BudgetExceededError: The spend ceiling has been reached.
            Exception: Any provider failure once retries are exhausted.
        """
        ...

    def usage_summary(self) -> Optional[UsageSummary]:
        return None

    def reset(self) -> None:
        """Start a new run: clear per-run usage and budget state."""


# ── Usage accounting ───────────────────────────────────────────────

def _usage_value(usage: Any, key: str) -> int:
    value = usage.get(key) if isinstance(usage, dict) else getattr(usage, key, None)
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


class UsageTracker:
    """Token and cost totals, overall and per model."""

    def __init__(self, pricing: Optional[dict[str, ModelPricing]] = None):
        self.pricing = pricing or {}
        self._totals = ModelUsage()
        self._per_model: dict[str, ModelUsage] = {}

    @property
    def total_cost(self) -> float:
        return self._totals.cost_usd

    def cost_of(self, model: str, prompt_tokens: int, completion_tokens: int) -> float:
        """USD cost of one call. Models without a price cost nothing."""
        price = self.pricing.get(model)
        if price is None:
            return 0.0
        return (
            prompt_tokens / 1_000_000 * price.input_per_million
            + completion_tokens / 1_000_000 * price.output_per_million
        )

    def record(self, model: str, usage: Any) -> float:
        """Add one call's usage (dict or object with token counts). Returns its cost."""
        if usage is None:
            return 0.0
        prompt_tokens = _usage_value(usage, "prompt_tokens")
        completion_tokens = _usage_value(usage, "completion_tokens")
        total_tokens = _usage_value(usage, "total_tokens") or prompt_tokens + completion_tokens
        cost = self.cost_of(model, prompt_tokens, completion_tokens)

        for bucket in (self._totals, self._per_model.setdefault(model, ModelUsage())):
            bucket.prompt_tokens += prompt_tokens
            bucket.completion_tokens += completion_tokens
            bucket.total_tokens += total_tokens
            bucket.cost_usd += cost
        return cost

    def summary(self) -> UsageSummary:
        return UsageSummary(
            **self._totals.model_dump(),
            per_model={model: usage.model_copy() for model, usage in self._per_model.items()},
        )


# ── Budgeted provider ──────────────────────────────────────────────

class BudgetedProvider(LLMProvider):
    """
    Budget, retry and usage around a raw completion call.

    Usage totals and the budget latch cover one orchestration run;
    ``reset()`` starts the next one. The monthly spend is looked up again
    after a reset, so earlier runs count through the store.

    Args:
        firm_id: Firm whose monthly spend is checked.
        monthly_spend: ``async (firm_id, month_start) -> float``.
        monthly_budget_usd: Spend ceiling for the calendar month.
        max_retries: Additional attempts after a failed call.
        pricing: Per-model price table.
        extraction_model: Model for extraction and consistency prompts.
        classifier_model: Model for every other prompt.
        now: Returns the current UTC datetime.
    """

    provider_name = "base"

    def __init__(
        self,
        firm_id: Optional[str],
        monthly_spend: MonthlySpendFn,
        monthly_budget_usd: float = 100.0,
        max_retries: int = 2,
        pricing: Optional[dict[str, ModelPricing]] = None,
        extraction_model: str = "gpt-4.1",
        classifier_model: str = "gpt-4o-mini",
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.firm_id = firm_id
        self.monthly_spend = monthly_spend
        self.monthly_budget_usd = monthly_budget_usd
        self.max_retries = max(0, max_retries)
        self.extraction_model = extraction_model
        self.classifier_model = classifier_model
        self.now = now
        self.usage = UsageTracker(pricing)
        self.budget_exceeded = False
        self._spend_cache: Optional[tuple[datetime, float]] = None

    def model_for_prompt(self, prompt_id: str) -> str:
        if prompt_id in _EXTRACTION_PROMPTS:
            return self.extraction_model
        return self.classifier_model

    def usage_summary(self) -> UsageSummary:
        return self.usage.summary()

    def reset(self) -> None:
        self.usage = UsageTracker(self.usage.pricing)
        self.budget_exceeded = False
        self._spend_cache = None

    # ── budget ─────────────────────────────────────────────────────
    async def _spend_this_month(self) -> float:
        month_start = month_start_utc(self.now())
        if self._spend_cache is None or self._spend_cache[0] != month_start:
            total = await self.monthly_spend(self.firm_id, month_start)
            self._spend_cache = (month_start, total)
        return self._spend_cache[1]

    def _projected(self, spend: float) -> float:
        return spend + self.usage.total_cost

    async def ensure_budget_available(self) -> None:
        if self.budget_exceeded:
            raise BudgetExceededError("Monthly AI budget exceeded")
        projected = self._projected(await self._spend_this_month())
        if projected >= self.monthly_budget_usd:
            self.budget_exceeded = True
            logger.warning(
                f"Firm {self.firm_id}: projected spend ${projected:.4f} reached "
                f"budget ${self.monthly_budget_usd:.2f}"
            )
            raise BudgetExceededError("Monthly AI budget exceeded")

    # ── calls ──────────────────────────────────────────────────────
    @abstractmethod
    async def _complete(self, model: str, messages: list[dict[str, str]]) -> tuple[Optional[str], Any]:
        """One raw completion. Returns (content, usage)."""
        ...

    async def _attempt(self, model: str, messages: list[dict[str, str]]) -> Any:
        await self.ensure_budget_available()
        content, usage = await self._complete(model, messages)

        # Billed tokens count even when the content is unusable.
        self.usage.record(model, usage)
        if self._spend_cache is not None and self._projected(self._spend_cache[1]) >= self.monthly_budget_usd:
            self.budget_exceeded = True
        if not content:
            raise ValueError("Empty response")
        return json.loads(content)

    async def generate_json(
        self,
        prompt_id: str,
        system_prompt: str,
        user_prompt: str,
        task_input: dict[str, Any],
    ) -> Any:
        model = self.model_for_prompt(prompt_id)
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": build_user_content(user_prompt, task_input)},
        ]

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_none(),
            retry=retry_if_not_exception_type(BudgetExceededError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                result = await self._attempt(model, messages)
        logger.debug(f"{prompt_id} completed on {model}")
        return result


# ── OpenAI ─────────────────────────────────────────────────────────

class OpenAIProvider(BudgetedProvider):
    """
    OpenAI chat completions in JSON mode.

    The client is created on first use; pass ``client`` to inject one
    (any object exposing ``chat.completions.create`` as a coroutine).
    """

    provider_name = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        *args: Any,
        temperature: float = 0.0,
        max_output_tokens: Optional[int] = None,
        request_timeout_s: Optional[float] = None,
        client: Any = None,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        if not api_key and client is None:
            raise ProviderNotConfiguredError("An OpenAI API key is required for the WF4 provider")
        self.api_key = api_key
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.request_timeout_s = request_timeout_s
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import AsyncOpenAI

            options: dict[str, Any] = {"api_key": self.api_key, "max_retries": 0}
            if self.request_timeout_s:
                options["timeout"] = self.request_timeout_s
            self._client = AsyncOpenAI(**options)
        return self._client

    async def _complete(self, model: str, messages: list[dict[str, str]]) -> tuple[Optional[str], Any]:
        request: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "response_format": {"type": "json_object"},
            "temperature": self.temperature,
        }
        if self.max_output_tokens:
            request["max_tokens"] = self.max_output_tokens

        response = await self._get_client().chat.completions.create(**request)
        content = response.choices[0].message.content if response.choices else None
        return content, response.usage


def build_provider(
    config: LexIntakeConfig,
    firm_id: Optional[str],
    monthly_spend: MonthlySpendFn,
) -> Optional[LLMProvider]:
    """Provider for one run, or None when no API key is configured."""
    if not config.has_llm:
        logger.warning("No OpenAI API key configured; WF4 runs will be recorded as FAIL")
        return None
    ai = config.ai
    return OpenAIProvider(
        config.openai_api_key,
        firm_id=firm_id,
        monthly_spend=monthly_spend,
        monthly_budget_usd=ai.monthly_budget_usd,
        max_retries=ai.max_retries,
        pricing=ai.model_pricing,
        extraction_model=ai.extraction_model,
        classifier_model=ai.classifier_model,
        temperature=ai.temperature,
        max_output_tokens=ai.max_output_tokens,
        request_timeout_s=ai.request_timeout_s,
    )
