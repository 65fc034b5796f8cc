"""Flatten the opencode provider catalog into ACP model choices."""

from __future__ import annotations

import logging

from acp.schema import ModelInfo, SessionModelState

from opencode_acp.backend.models import Provider, ProviderCatalog

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "anthropic/claude-sonnet-4-20250514"
SYNTHETIC_MODEL_ID = "default"


def default_model_entry() -> dict[str, str]:
    return {
        "modelId": SYNTHETIC_MODEL_ID,
        "name": "Default Model",
        "description": "opencode default model",
    }


def flatten_providers(providers: list[Provider]) -> list[dict[str, str]]:
    """Return `{modelId, name, description}` entries, provider order first."""

    models: list[dict[str, str]] = []
    for provider in providers:
        if not provider.models:
            logger.warning("Provider %s has no models", provider.id)
            continue
        provider_name = provider.name or provider.id
        for model_id, model in provider.models.items():
            name = model.name or model_id
            models.append(
                {
                    "modelId": f"{provider.id}/{model_id}",
                    "name": name,
                    "description": f"{provider_name} - {name}",
                }
            )
    return models


def split_model_id(model: str | None) -> tuple[str | None, str | None]:
    """Split `provider/model` into its halves.

    An unset model falls back to DEFAULT_MODEL_ID; a value without a slash (the
    synthetic `default`) yields (None, None) so the backend picks its own.
    """

    value = model or DEFAULT_MODEL_ID
    provider_id, sep, model_id = value.partition("/")
    if not sep or not provider_id or not model_id:
        return None, None
    return provider_id, model_id


def resolve_command_model(current: str | None, catalog: ProviderCatalog | None = None) -> tuple[str, str]:
    """Return a concrete (provider, model) pair for backend calls that require one.

    Tries the session model, then the backend's own default (first entry of
    the catalog `default` map that names a listed provider, else its first
    entry), then DEFAULT_MODEL_ID.
    """

    provider_id, model_id = split_model_id(current)
    if provider_id and model_id:
        return provider_id, model_id
    if catalog is not None and catalog.default:
        listed = {provider.id for provider in catalog.providers}
        preferred = [item for item in catalog.default.items() if item[0] in listed]
        provider_id, model_id = (preferred or list(catalog.default.items()))[0]
        if provider_id and model_id:
            return provider_id, model_id
    provider_id, _, model_id = DEFAULT_MODEL_ID.partition("/")
    return provider_id, model_id


def build_model_state(models: list[dict[str, str]], current_model_id: str) -> SessionModelState:
    return SessionModelState(
        available_models=[
            ModelInfo(model_id=m["modelId"], name=m["name"], description=m.get("description")) for m in models
        ],
        current_model_id=current_model_id,
    )
