"""tests for model capability rules."""

import pytest

from uwu_canvas.core.capabilities import (
    ModelCapability,
    get_model_capabilities,
    is_curated_model,
    is_image_model,
    should_exclude_model,
)


class TestCapabilities:
    @pytest.mark.parametrize("model_id", ["dall-e-3", "gpt-image-1", "gpt-image-1-mini", "imagen-3.0-generate-002"])
    def test_dedicated_image_models(self, model_id):
        assert get_model_capabilities(model_id) == [ModelCapability.IMAGE]
        assert is_image_model(model_id)

    def test_gemini_image_models_do_both(self):
        caps = get_model_capabilities("gemini-2.5-flash-image")
        assert caps == [ModelCapability.TEXT, ModelCapability.IMAGE]
        assert get_model_capabilities("nano-banana-pro-preview") == caps

    @pytest.mark.parametrize("model_id", ["gpt-4o", "claude-sonnet-4-5-20250929", "gemini-2.5-pro", "o3-mini"])
    def test_component_capable(self, model_id):
        assert get_model_capabilities(model_id) == [ModelCapability.TEXT, ModelCapability.COMPONENT]
        assert not is_image_model(model_id)

    def test_plain_text_model(self):
        assert get_model_capabilities("gpt-3.5-turbo") == [ModelCapability.TEXT]

    @pytest.mark.parametrize("model_id", [
        "gpt-4o-audio-preview",
        "gpt-4o-realtime-preview",
        "text-embedding-3-small",
        "whisper-1",
        "omni-moderation-latest",
        "o3-deep-research",
    ])
    def test_excluded(self, model_id):
        assert should_exclude_model(model_id)

    def test_not_excluded(self):
        assert not should_exclude_model("gpt-4o")

    def test_curated(self):
        assert is_curated_model("anthropic", "claude-sonnet-4-5-20250929")
        assert not is_curated_model("openai", "claude-sonnet-4-5-20250929")
        assert not is_curated_model("mistral", "anything")
