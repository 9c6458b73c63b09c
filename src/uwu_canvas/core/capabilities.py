"""model capability rules: which models draw images, which can write components."""

from __future__ import annotations

import re
from enum import Enum


class ModelCapability(Enum):
    TEXT = "text"
    IMAGE = "image"
    COMPONENT = "component"


# models that never show up in the picker
EXCLUDED_MODEL_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"audio",
        r"realtime",
        r"\btts\b",
        r"search",
        r"transcribe",
        r"robotics",
        r"embedding",
        r"whisper",
        r"moderation",
        r"deep-research",
        r"computer-use",
    )
]

# dedicated image generators (image endpoint only)
DEDICATED_IMAGE_MODELS = {"dall-e-2", "dall-e-3", "gpt-image-1"}
DEDICATED_IMAGE_PATTERNS = [re.compile(r"^gpt-image-"), re.compile(r"^imagen-")]

# multimodal gemini models that can answer with an image or with text
GEMINI_IMAGE_MODELS = {
    "gemini-2.5-flash-image",
    "gemini-2.0-flash-image",
    "gemini-2.0-flash-exp-image-generation",
    "gemini-3-pro-image-preview",
    "nano-banana-pro-preview",
}
GEMINI_IMAGE_PATTERN = re.compile(r"image|banana", re.IGNORECASE)

COMPONENT_CAPABLE_PATTERNS = [
    re.compile(p)
    for p in (
        # openai
        r"^gpt-4",
        r"^gpt-5",
        r"^o[134](-|$)",
        # anthropic
        r"^claude-(sonnet|opus)-4",
        r"^claude-3-[5-9]-",
        r"^claude-3-opus",
        r"^claude-(sonnet|opus|haiku)-[4-9]",
        # google
        r"^gemini-[23]\.",
        r"^gemini-3",
    )
]

CURATED_MODELS = {
    "google": {
        "gemini-2.5-flash",
        "gemini-2.5-pro",
        "gemini-2.0-flash-exp-image-generation",
        "nano-banana-pro-preview",
    },
    "anthropic": {
        "claude-opus-4-6",
        "claude-sonnet-4-5-20250929",
        "claude-haiku-4-5-20251001",
    },
    "openai": {
        "gpt-5.2",
        "gpt-5-nano",
        "gpt-image-1.5",
        "gpt-image-1-mini",
    },
}


def should_exclude_model(model_id: str) -> bool:
    return any(p.search(model_id) for p in EXCLUDED_MODEL_PATTERNS)


def is_dedicated_image_model(model_id: str) -> bool:
    if model_id in DEDICATED_IMAGE_MODELS:
        return True
    return any(p.search(model_id) for p in DEDICATED_IMAGE_PATTERNS)


def is_gemini_image_model(model_id: str) -> bool:
    if model_id in GEMINI_IMAGE_MODELS:
        return True
    return bool(GEMINI_IMAGE_PATTERN.search(model_id))


def is_component_capable(model_id: str) -> bool:
    return any(p.search(model_id) for p in COMPONENT_CAPABLE_PATTERNS)


def get_model_capabilities(model_id: str) -> list[ModelCapability]:
    """resolve capabilities in priority order: image-only, gemini image, text."""
    if is_dedicated_image_model(model_id):
        return [ModelCapability.IMAGE]
    if is_gemini_image_model(model_id):
        return [ModelCapability.TEXT, ModelCapability.IMAGE]
    caps = [ModelCapability.TEXT]
    if is_component_capable(model_id):
        caps.append(ModelCapability.COMPONENT)
    return caps


def is_image_model(model_id: str) -> bool:
    return ModelCapability.IMAGE in get_model_capabilities(model_id)


def is_curated_model(provider: str, model_id: str) -> bool:
    return model_id in CURATED_MODELS.get(provider, set())
