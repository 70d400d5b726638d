"""Model and provider catalog management."""

from llm_relay.providers.registry import (
    Catalog,
    CatalogError,
    CatalogHolder,
    CredentialStore,
    ModelEntry,
    ModelNotFound,
    ModelRegistry,
    ProviderEntry,
    ProviderRegistry,
    load_catalog,
)

__all__ = [
    "Catalog",
    "CatalogError",
    "CatalogHolder",
    "CredentialStore",
    "ModelEntry",
    "ModelNotFound",
    "ModelRegistry",
    "ProviderEntry",
    "ProviderRegistry",
    "load_catalog",
]
