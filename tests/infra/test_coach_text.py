"""Tests for the pydantic_ai-backed coaching text generator with a stubbed Agent."""

from types import SimpleNamespace

import pytest

from nutricoach.coaching.context import AiCoachState, Goal, Macros, MemberContext, Water
from nutricoach.coaching.messages import COACH_SYSTEM_PROMPT
from nutricoach.coaching.recommendation import RECOMMENDATION_SYSTEM_PROMPT, RecommendationContext
from nutricoach.infra.llm import coach_text
from nutricoach.infra.llm.coach_text import LlmUnavailableError, PydanticAiCoachGenerator


class StubAgent:
    instances: list["StubAgent"] = []

    def __init__(self, model, system_prompt, output_type):
        self.model = model
        self.system_prompt = system_prompt
        self.runs: list[tuple[str, dict]] = []
        StubAgent.instances.append(self)

    async def run(self, user_prompt, model_settings=None):
        self.runs.append((user_prompt, model_settings))
        return SimpleNamespace(output="  สู้ๆ นะคะ  ")


@pytest.fixture(autouse=True)
def stub_agent(monkeypatch):
    StubAgent.instances = []
    monkeypatch.setattr(coach_text, "Agent", StubAgent)
    monkeypatch.setattr(coach_text, "get_model", lambda provider, name: f"{provider}:{name}")


def _member_context() -> MemberContext:
    return MemberContext(
        name="Nok",
        goal=Goal(type="maintain"),
        ai_coach=AiCoachState(is_active=True, is_unlimited=True),
        today=Macros(),
        yesterday=Macros(),
        targets=Macros(calories=2000, protein=80),
        water=Water(current=0, target=8),
    )


@pytest.mark.asyncio
async def test_coaching_text_is_stripped_and_agent_reused():
    generator = PydanticAiCoachGenerator(api_key="sk-test")

    assert await generator.generate("morning", _member_context()) == "สู้ๆ นะคะ"
    await generator.generate("evening", _member_context())

    assert len(StubAgent.instances) == 1
    agent = StubAgent.instances[0]
    assert agent.system_prompt == COACH_SYSTEM_PROMPT
    assert agent.runs[0][0].startswith("ข้อมูลลูกค้า:")
    assert agent.runs[0][1]["max_tokens"] == coach_text.COACHING_MAX_TOKENS


@pytest.mark.asyncio
async def test_recommendation_uses_its_own_agent():
    generator = PydanticAiCoachGenerator(api_key="sk-test")

    await generator.generate("recommendation", RecommendationContext(stock_items=["Tofu"]))

    agent = StubAgent.instances[0]
    assert agent.system_prompt == RECOMMENDATION_SYSTEM_PROMPT
    assert "Tofu" in agent.runs[0][0]
    assert agent.runs[0][1]["max_tokens"] == coach_text.RECOMMENDATION_MAX_TOKENS


@pytest.mark.asyncio
async def test_missing_key_raises():
    with pytest.raises(LlmUnavailableError):
        await PydanticAiCoachGenerator(api_key="").generate("morning", _member_context())


@pytest.mark.asyncio
async def test_wrong_context_type_raises():
    generator = PydanticAiCoachGenerator(api_key="sk-test")
    with pytest.raises(TypeError):
        await generator.generate("recommendation", _member_context())
