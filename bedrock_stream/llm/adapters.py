"""
Provider payload adapters.

Bedrock model families disagree on request and response JSON. The input side
is a table of body builders keyed by provider; the output side is a table of
pydantic schemas, one per response shape, so a missing field fails loudly
instead of reading as an empty completion.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Callable
from typing import Any, ClassVar

from pydantic import BaseModel, Field, ValidationError

from .exceptions import DecodeError
from .models import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, ModelProvider

InputBuilder = Callable[[str, int, float], dict[str, Any]]


def _anthropic_input(prompt: str, max_tokens: int, temperature: float) -> dict[str, Any]:
    return {
        "prompt": prompt,
        "max_tokens_to_sample": max_tokens,
        "temperature": temperature,
    }


def _ai21_input(prompt: str, max_tokens: int, temperature: float) -> dict[str, Any]:
    return {
        "prompt": prompt,
        "maxTokens": max_tokens,
        "temperature": temperature,
    }


def _amazon_input(prompt: str, max_tokens: int, temperature: float) -> dict[str, Any]:
    return {
        "inputText": prompt,
        "textGenerationConfig": {
            "maxTokenCount": max_tokens,
            "temperature": temperature,
        },
    }


INPUT_BUILDERS: dict[ModelProvider, InputBuilder] = {
    ModelProvider.ANTHROPIC: _anthropic_input,
    ModelProvider.AI21: _ai21_input,
    ModelProvider.AMAZON: _amazon_input,
}


class ProviderOutput(BaseModel):
    """Base schema for a provider response body."""
    field_path: ClassVar[str] = ""

    @property
    @abstractmethod
    def text(self) -> str:
        """Generated text carried by the body."""


class AnthropicOutput(ProviderOutput):
    field_path: ClassVar[str] = "completion"

    completion: str

    @property
    def text(self) -> str:
        return self.completion


class AI21Data(BaseModel):
    text: str


class AI21Output(ProviderOutput):
    field_path: ClassVar[str] = "data.text"

    data: AI21Data

    @property
    def text(self) -> str:
        return self.data.text


class AmazonOutput(ProviderOutput):
    field_path: ClassVar[str] = "outputText"

    output_text: str = Field(alias="outputText")

    @property
    def text(self) -> str:
        return self.output_text


OUTPUT_SCHEMAS: dict[ModelProvider, type[ProviderOutput]] = {
    ModelProvider.ANTHROPIC: AnthropicOutput,
    ModelProvider.AI21: AI21Output,
}

# Providers without their own entry are read as Titan-shaped bodies.
# A new provider added to ModelProvider without an output schema will be
# decoded through this fallback.
DEFAULT_OUTPUT_SCHEMA: type[ProviderOutput] = AmazonOutput


def prepare_input(
    provider: ModelProvider,
    prompt: str,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    temperature: float = DEFAULT_TEMPERATURE,
) -> dict[str, Any]:
    """Build the provider-specific request body.

    Args:
        provider: Model family selected from the model id.
        prompt: Prompt text.
        max_tokens: Upper bound on generated tokens.
        temperature: Sampling temperature.

    Returns:
        JSON-serialisable request body with exactly the provider's fields.
    """
    return INPUT_BUILDERS[provider](prompt, max_tokens, temperature)


def output_schema_for(provider: ModelProvider) -> type[ProviderOutput]:
    return OUTPUT_SCHEMAS.get(provider, DEFAULT_OUTPUT_SCHEMA)


def prepare_output(provider: ModelProvider, body: dict[str, Any]) -> str:
    """Extract the generated text from a decoded provider response body.

    Raises:
        DecodeError: If the provider's text field is missing or not a string.
    """
    schema = output_schema_for(provider)
    try:
        return schema.model_validate(body).text
    except ValidationError as e:
        raise DecodeError(
            f"Response body for provider '{provider.value}' has no valid "
            f"'{schema.field_path}' field: {body!r}",
            provider=provider.value,
        ) from e
