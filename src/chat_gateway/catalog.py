from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class BackendVariant(str, Enum):
    TURN_BASED = "chat"
    STRUCTURED = "responses"


@dataclass(frozen=True)
class ModelPricing:
    """USD per million tokens."""

    input: float
    output: float
    reasoning: float | None = None
    tiers: dict[str, ModelPricing] = field(default_factory=dict)


@dataclass(frozen=True)
class ModeTuning:
    temperature: float | None = None
    top_p: float | None = None
    max_output_tokens: int | None = None
    reasoning_effort: str | None = None
    verbosity: str | None = None


@dataclass(frozen=True)
class ModelEntry:
    name: str
    variant: BackendVariant
    pricing: ModelPricing | None
    modes: dict[str, ModeTuning]


MODES = ("auto", "instant", "thinking", "pro")

_CHAT_MODES = {
    "auto": {"Temperature": 0.7, "TopP": 1, "MaxOutputTokens": 2048},
    "instant": {"Temperature": 0.5, "TopP": 1, "MaxOutputTokens": 1024},
    "thinking": {"Temperature": 0.3, "TopP": 0.9, "MaxOutputTokens": 4096},
    "pro": {"Temperature": 0.2, "TopP": 0.9, "MaxOutputTokens": 8192},
}

_RESPONSES_MODES = {
    "auto": {"ReasoningEffort": "medium", "Verbosity": "medium", "MaxOutputTokens": 32768},
    "instant": {"ReasoningEffort": "minimal", "Verbosity": "low", "MaxOutputTokens": 8192},
    "thinking": {"ReasoningEffort": "high", "Verbosity": "medium", "MaxOutputTokens": 32768},
    "pro": {"ReasoningEffort": "high", "Verbosity": "high", "MaxOutputTokens": 65536},
}

# Same shape as the "Models" section of config.json.
DEFAULT_MODELS: dict[str, dict] = {
    "gpt-4o-mini": {"Api": "chat", "Pricing": {"Input": 0.15, "Output": 0.60}, "Modes": _CHAT_MODES},
    "gpt-4o": {"Api": "chat", "Pricing": {"Input": 2.50, "Output": 10.00}, "Modes": _CHAT_MODES},
    "gpt-4.1": {"Api": "chat", "Pricing": {"Input": 2.00, "Output": 8.00}, "Modes": _CHAT_MODES},
    "gpt-4.1-mini": {"Api": "chat", "Pricing": {"Input": 0.40, "Output": 1.60}, "Modes": _CHAT_MODES},
    "gpt-5": {"Api": "responses", "Pricing": {"Input": 1.25, "Output": 10.00}, "Modes": _RESPONSES_MODES},
    "gpt-5-mini": {"Api": "responses", "Pricing": {"Input": 0.25, "Output": 2.00}, "Modes": _RESPONSES_MODES},
}


def _parse_pricing(raw: dict | None) -> ModelPricing | None:
    if not raw:
        return None
    reasoning = raw.get("Reasoning")
    return ModelPricing(
        input=float(raw.get("Input", 0.0)),
        output=float(raw.get("Output", 0.0)),
        reasoning=float(reasoning) if reasoning is not None else None,
        tiers={
            str(tier).lower(): _parse_pricing(tier_raw)
            for tier, tier_raw in (raw.get("Tiers") or {}).items()
            if tier_raw
        },
    )


def _parse_tuning(raw: dict) -> ModeTuning:
    max_output = raw.get("MaxOutputTokens")
    return ModeTuning(
        temperature=float(raw["Temperature"]) if raw.get("Temperature") is not None else None,
        top_p=float(raw["TopP"]) if raw.get("TopP") is not None else None,
        max_output_tokens=int(max_output) if max_output is not None else None,
        reasoning_effort=raw.get("ReasoningEffort"),
        verbosity=raw.get("Verbosity"),
    )


def parse_model_entry(name: str, raw: dict) -> ModelEntry:
    api = str(raw.get("Api", "chat")).strip().lower()
    try:
        variant = BackendVariant(api)
    except ValueError:
        raise ValueError(f"Unknown Api {api!r} for model {name!r}. Supported: 'chat', 'responses'") from None
    return ModelEntry(
        name=name,
        variant=variant,
        pricing=_parse_pricing(raw.get("Pricing")),
        modes={str(mode).lower(): _parse_tuning(tuning) for mode, tuning in (raw.get("Modes") or {}).items()},
    )


class ModelCatalog:
    def __init__(self, entries: dict[str, ModelEntry]):
        self._entries = dict(entries)

    @classmethod
    def from_config(cls, overrides: dict[str, dict] | None = None) -> ModelCatalog:
        """Build the catalog from the built-in models, with config entries merged over them."""
        raw_models: dict[str, dict] = {name: dict(raw) for name, raw in DEFAULT_MODELS.items()}
        for name, raw in (overrides or {}).items():
            raw_models[name] = {**raw_models.get(name, {}), **raw}
        return cls({name: parse_model_entry(name, raw) for name, raw in raw_models.items()})

    def models(self) -> list[str]:
        return sorted(self._entries)

    def get(self, model: str) -> ModelEntry | None:
        return self._entries.get(model)

    def variant(self, model: str) -> BackendVariant:
        entry = self._entries.get(model)
        if entry is None:
            return BackendVariant.TURN_BASED
        return entry.variant

    def pricing(self, model: str) -> ModelPricing | None:
        entry = self._entries.get(model)
        return entry.pricing if entry is not None else None

    def tuning(self, model: str, mode: str) -> ModeTuning:
        entry = self._entries.get(model)
        if entry is None:
            return ModeTuning()
        return entry.modes.get(mode) or entry.modes.get("auto") or ModeTuning()
