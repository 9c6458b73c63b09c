"""provider catalog: which ai providers are configured and what models they offer."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Optional

import httpx

from .capabilities import ModelCapability, get_model_capabilities, is_curated_model, should_exclude_model

logger = logging.getLogger(__name__)

PROVIDER_ENV_KEYS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_GENERATIVE_AI_API_KEY",
}

PROVIDER_NAMES = {
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "google": "Google",
}


@dataclass
class ModelInfo:
    id: str
    name: str
    capabilities: list[ModelCapability] = field(default_factory=list)
    curated: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "capabilities": [c.value for c in self.capabilities],
            "curated": self.curated,
        }


@dataclass
class ProviderData:
    name: str
    models: list[ModelInfo]

    def to_dict(self) -> dict:
        return {"name": self.name, "models": [m.to_dict() for m in self.models]}


def _annotate(provider: str, raw: list[tuple[str, str]]) -> list[ModelInfo]:
    return [
        ModelInfo(
            id=model_id,
            name=name,
            capabilities=get_model_capabilities(model_id),
            curated=is_curated_model(provider, model_id),
        )
        for model_id, name in raw
        if not should_exclude_model(model_id)
    ]


class ProviderCatalog:
    """lists models from every provider that has an api key configured."""

    def __init__(self, env: Optional[dict[str, str]] = None, timeout: float = 10.0):
        self.env = env if env is not None else dict(os.environ)
        self.timeout = timeout

    def configured_providers(self) -> list[str]:
        return [p for p, key in PROVIDER_ENV_KEYS.items() if self.env.get(key)]

    async def fetch(self) -> dict[str, ProviderData]:
        """fetch all providers in parallel. providers with no models are omitted."""
        providers = self.configured_providers()
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            results = await asyncio.gather(
                *(self._fetch_provider(client, p) for p in providers)
            )
        return {
            provider: ProviderData(name=PROVIDER_NAMES[provider], models=models)
            for provider, models in zip(providers, results)
            if models
        }

    async def _fetch_provider(self, client: httpx.AsyncClient, provider: str) -> list[ModelInfo]:
        api_key = self.env[PROVIDER_ENV_KEYS[provider]]
        try:
            if provider == "openai":
                raw = await self._fetch_openai(client, api_key)
            elif provider == "anthropic":
                raw = await self._fetch_anthropic(client, api_key)
            else:
                raw = await self._fetch_google(client, api_key)
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning("could not list %s models: %s", provider, e)
            return []
        return _annotate(provider, raw)

    async def _fetch_openai(self, client: httpx.AsyncClient, api_key: str) -> list[tuple[str, str]]:
        response = await client.get(
            "https://api.openai.com/v1/models",
            headers={"Authorization": f"Bearer {api_key}"},
        )
        response.raise_for_status()
        ids = sorted(
            m["id"] for m in response.json()["data"]
            if (m["id"].startswith("gpt-") or m["id"].startswith("o") or m["id"].startswith("dall-e"))
            and "instruct" not in m["id"]
        )
        return [(model_id, model_id) for model_id in ids]

    async def _fetch_anthropic(self, client: httpx.AsyncClient, api_key: str) -> list[tuple[str, str]]:
        response = await client.get(
            "https://api.anthropic.com/v1/models",
            headers={"x-api-key": api_key, "anthropic-version": "2023-06-01"},
        )
        response.raise_for_status()
        return [(m["id"], m.get("display_name") or m["id"]) for m in response.json()["data"]]

    async def _fetch_google(self, client: httpx.AsyncClient, api_key: str) -> list[tuple[str, str]]:
        response = await client.get(
            "https://generativelanguage.googleapis.com/v1beta/models",
            params={"key": api_key},
        )
        response.raise_for_status()
        models = []
        for m in response.json()["models"]:
            if "generateContent" not in m.get("supportedGenerationMethods", []):
                continue
            model_id = m["name"].replace("models/", "")
            models.append((model_id, m.get("displayName") or model_id))
        return models
