"""LLM model names used by the coaching features."""

# Short user-facing coaching and recommendation text
USER_FACING_MODEL = "gpt-4o-mini"

COACHING_MAX_TOKENS = 500
RECOMMENDATION_MAX_TOKENS = 150
TEMPERATURE = 0.7
