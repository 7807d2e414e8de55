"""LLM client module."""

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
    extract_json_array,
    extract_json_object,
)

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
    "extract_json_array",
    "extract_json_object",
]
