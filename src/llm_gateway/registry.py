"""Read-only model metadata table (pricing, provider, capabilities).

The registry is built once at startup and handed to the components that need
it. Prices are USD per 1M tokens, which is numerically the same as micro-USD
per token.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ModelInfo(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    provider: str
    type: str = "llm"  # llm | image
    description: str = ""
    context_window: int | None = None
    input_cost: float = Field(default=0.0, ge=0)  # USD per 1M input tokens
    output_cost: float = Field(default=0.0, ge=0)  # USD per 1M output tokens
    capabilities: tuple[str, ...] = ()
    status: str = "available"


DEFAULT_MODELS: dict[str, dict] = {
    "gpt-4o": {
        "name": "GPT-4o", "provider": "OpenAI", "context_window": 128000,
        "input_cost": 2.50, "output_cost": 10.00,
        "capabilities": ["chat", "vision", "function-calling", "json-mode"],
    },
    "gpt-4o-mini": {
        "name": "GPT-4o Mini", "provider": "OpenAI", "context_window": 128000,
        "input_cost": 0.15, "output_cost": 0.60,
        "capabilities": ["chat", "vision", "function-calling", "json-mode"],
    },
    "gpt-4-turbo": {
        "name": "GPT-4 Turbo", "provider": "OpenAI", "context_window": 128000,
        "input_cost": 10.00, "output_cost": 30.00,
        "capabilities": ["chat", "vision", "function-calling"],
    },
    "o1": {
        "name": "o1", "provider": "OpenAI", "context_window": 200000,
        "input_cost": 15.00, "output_cost": 60.00, "capabilities": ["reasoning", "chat"],
    },
    "o1-mini": {
        "name": "o1 Mini", "provider": "OpenAI", "context_window": 128000,
        "input_cost": 3.00, "output_cost": 12.00, "capabilities": ["reasoning", "chat"],
    },
    "o3-mini": {
        "name": "o3 Mini", "provider": "OpenAI", "context_window": 200000,
        "input_cost": 1.10, "output_cost": 4.40, "capabilities": ["reasoning", "chat"],
        "status": "beta",
    },
    "claude-3-5-sonnet-20241022": {
        "name": "Claude 3.5 Sonnet", "provider": "Anthropic", "context_window": 200000,
        "input_cost": 3.00, "output_cost": 15.00,
        "capabilities": ["chat", "vision", "tool-use", "computer-use"],
    },
    "claude-3-5-haiku-20241022": {
        "name": "Claude 3.5 Haiku", "provider": "Anthropic", "context_window": 200000,
        "input_cost": 0.80, "output_cost": 4.00, "capabilities": ["chat", "vision", "tool-use"],
    },
    "claude-opus-4-20250514": {
        "name": "Claude Opus 4", "provider": "Anthropic", "context_window": 200000,
        "input_cost": 15.00, "output_cost": 75.00,
        "capabilities": ["chat", "vision", "tool-use", "extended-thinking"],
    },
    "claude-sonnet-4-20250514": {
        "name": "Claude Sonnet 4", "provider": "Anthropic", "context_window": 200000,
        "input_cost": 3.00, "output_cost": 15.00,
        "capabilities": ["chat", "vision", "tool-use", "extended-thinking"],
    },
    "gemini-2.0-flash": {
        "name": "Gemini 2.0 Flash", "provider": "Google", "context_window": 1000000,
        "input_cost": 0.10, "output_cost": 0.40,
        "capabilities": ["chat", "vision", "function-calling"],
    },
    "gemini-2.5-pro": {
        "name": "Gemini 2.5 Pro", "provider": "Google", "context_window": 1000000,
        "input_cost": 1.25, "output_cost": 10.00,
        "capabilities": ["chat", "vision", "function-calling", "deep-thinking"],
    },
    "deepseek-chat": {
        "name": "DeepSeek V3", "provider": "DeepSeek", "context_window": 64000,
        "input_cost": 0.14, "output_cost": 0.28, "capabilities": ["chat", "function-calling"],
    },
    "deepseek-reasoner": {
        "name": "DeepSeek R1", "provider": "DeepSeek", "context_window": 64000,
        "input_cost": 0.55, "output_cost": 2.19, "capabilities": ["reasoning", "chat"],
    },
    "grok-3": {
        "name": "Grok 3", "provider": "xAI", "context_window": 131072,
        "input_cost": 3.00, "output_cost": 15.00,
        "capabilities": ["chat", "vision", "function-calling"],
    },
    "grok-3-mini": {
        "name": "Grok 3 Mini", "provider": "xAI", "context_window": 131072,
        "input_cost": 0.30, "output_cost": 0.50, "capabilities": ["chat", "function-calling"],
    },
    "dall-e-3": {
        "name": "DALL-E 3", "provider": "OpenAI", "type": "image",
        "capabilities": ["text-to-image"],
    },
}


class ModelRegistry(Mapping[str, ModelInfo]):
    """Immutable model-id -> ModelInfo mapping."""

    def __init__(self, models: Mapping[str, ModelInfo]):
        self._models = MappingProxyType(dict(models))

    @classmethod
    def from_dict(cls, raw: Mapping[str, dict]) -> ModelRegistry:
        return cls({model_id: ModelInfo(id=model_id, **fields) for model_id, fields in raw.items()})

    def __getitem__(self, model: str) -> ModelInfo:
        return self._models[model]

    def __iter__(self) -> Iterator[str]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def provider_for(self, model: str) -> str:
        """Provider name for a model id, used to tag ledger entries."""
        info = self._models.get(model)
        if info is not None:
            return info.provider
        if "/" in model:
            return model.split("/", 1)[0]
        return "unknown"

    def list_models(self, type: str | None = None) -> list[ModelInfo]:
        models = sorted(self._models.values(), key=lambda m: (m.provider, m.id))
        if type is not None:
            models = [m for m in models if m.type == type]
        return models


def load_registry(path: str | Path | None = None) -> ModelRegistry:
    """Build the registry from a YAML file, or from the built-in table."""
    if path is None:
        return ModelRegistry.from_dict(DEFAULT_MODELS)

    raw = yaml.safe_load(Path(path).read_text()) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Model registry must be a mapping of model id to fields: {path}")
    return ModelRegistry.from_dict(raw)
