"""Vendor presets for OpenAI-compatible chat-completions providers.

All supported vendors speak the same wire protocol, so a vendor is only
data: where to send requests and which model to ask for by default.
- mistral: https://api.mistral.ai/v1 (mistral-large-latest)
- deepseek: https://api.deepseek.com/v1 (deepseek-chat)
- openai: https://api.openai.com/v1 (gpt-3.5-turbo)
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class VendorPreset:
    """Default endpoint and model for a vendor."""
    name: str
    display_name: str
    base_url: str
    default_model: str
    available_models: tuple[str, ...]


VENDORS: dict[str, VendorPreset] = {
    "mistral": VendorPreset(
        name="mistral",
        display_name="Mistral",
        base_url="https://api.mistral.ai/v1",
        default_model="mistral-large-latest",
        available_models=(
            "mistral-large-latest",
            "mistral-medium-latest",
            "mistral-small-latest",
        ),
    ),
    "deepseek": VendorPreset(
        name="deepseek",
        display_name="DeepSeek",
        base_url="https://api.deepseek.com/v1",
        default_model="deepseek-chat",
        available_models=("deepseek-chat", "deepseek-coder"),
    ),
    "openai": VendorPreset(
        name="openai",
        display_name="OpenAI",
        base_url="https://api.openai.com/v1",
        default_model="gpt-3.5-turbo",
        available_models=("gpt-3.5-turbo", "gpt-4o-mini"),
    ),
}

# Order used when no provider is requested explicitly.
DEFAULT_PROVIDER_ORDER: tuple[str, ...] = ("mistral", "deepseek", "openai")


def get_vendor(name: str) -> VendorPreset:
    """Look up a vendor preset by key."""
    try:
        return VENDORS[name]
    except KeyError:
        raise ValueError(f"Unknown provider: {name}") from None
