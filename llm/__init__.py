"""LLM module - AI-transform client and settings."""

from llm.client.openai_client import (
    LLMError,
    ModelTier,
    OpenAITransformClient,
    PermanentLLMError,
    ProviderFn,
    RateLimitLLMError,
    TransformClient,
    TransformOptions,
    TransientLLMError,
)
from llm.settings import TransformSettings, get_transform_settings

__all__ = [
    "LLMError",
    "ModelTier",
    "OpenAITransformClient",
    "PermanentLLMError",
    "ProviderFn",
    "RateLimitLLMError",
    "TransformClient",
    "TransformOptions",
    "TransientLLMError",
    "TransformSettings",
    "get_transform_settings",
]
