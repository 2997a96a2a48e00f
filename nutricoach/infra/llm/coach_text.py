"""Coaching and recommendation text generation via LLM.

The generator only produces text. Timeouts and fallbacks are handled by the
callers, so every failure here is raised.
"""

from __future__ import annotations

from loguru import logger
from pydantic import BaseModel
from pydantic_ai import Agent

from nutricoach.coaching.categories import parse_category
from nutricoach.coaching.context import MemberContext
from nutricoach.coaching.messages import COACH_SYSTEM_PROMPT, build_prompt
from nutricoach.coaching.recommendation import (
    RECOMMENDATION_CATEGORY,
    RECOMMENDATION_SYSTEM_PROMPT,
    RecommendationContext,
    build_recommendation_prompt,
)
from nutricoach.config.models import COACHING_MAX_TOKENS, RECOMMENDATION_MAX_TOKENS, TEMPERATURE, USER_FACING_MODEL
from nutricoach.config.settings import settings
from nutricoach.services.llm.model import get_model


class LlmUnavailableError(RuntimeError):
    """Raised when no API key is configured."""


class PydanticAiCoachGenerator:
    """Text generator backed by a pydantic_ai Agent per prompt family."""

    def __init__(self, model_name: str = USER_FACING_MODEL, api_key: str | None = None) -> None:
        self.model_name = model_name
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self._agents: dict[str, Agent] = {}

    def _agent(self, system_prompt: str) -> Agent:
        agent = self._agents.get(system_prompt)
        if agent is None:
            agent = Agent(
                model=get_model("openai", self.model_name),
                system_prompt=system_prompt,
                output_type=str,
            )
            self._agents[system_prompt] = agent
        return agent

    async def generate(self, category: str, context: BaseModel) -> str:
        if not self.api_key:
            raise LlmUnavailableError("OPENAI_API_KEY is not configured")

        if category == RECOMMENDATION_CATEGORY:
            if not isinstance(context, RecommendationContext):
                raise TypeError(f"Expected RecommendationContext, got {type(context).__name__}")
            system_prompt = RECOMMENDATION_SYSTEM_PROMPT
            user_prompt = build_recommendation_prompt(context)
            max_tokens = RECOMMENDATION_MAX_TOKENS
        else:
            if not isinstance(context, MemberContext):
                raise TypeError(f"Expected MemberContext, got {type(context).__name__}")
            system_prompt = COACH_SYSTEM_PROMPT
            user_prompt = build_prompt(parse_category(category), context)
            max_tokens = COACHING_MAX_TOKENS

        logger.debug("LLM Prompt: Coaching text", category=category, user_prompt=user_prompt)
        result = await self._agent(system_prompt).run(
            user_prompt,
            model_settings={"max_tokens": max_tokens, "temperature": TEMPERATURE},
        )
        return result.output.strip()
