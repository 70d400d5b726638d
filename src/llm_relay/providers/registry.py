"""Model and provider catalog."""

import json
import os
import threading
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from llm_relay.utils import get_logger

logger = get_logger(__name__)


class CatalogError(ValueError):
    """Model or provider table is missing or malformed."""


class ModelNotFound(KeyError):
    """Requested model id is not in the model table."""

    def __init__(self, model_id: str) -> None:
        super().__init__(model_id)
        self.model_id = model_id


@dataclass(frozen=True)
class ModelEntry:
    """Public model metadata."""

    id: str
    name: str
    owned_by: str = ""
    premium: bool = False
    record: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Return the table record as configured, unknown keys included."""
        if self.record:
            return dict(self.record)
        return {
            "id": self.id,
            "name": self.name,
            "owned_by": self.owned_by,
            "premium": self.premium,
        }


@dataclass(frozen=True)
class ProviderEntry:
    """Upstream provider configuration.

    ``models`` maps public model ids to the provider's own ids.
    """

    name: str
    endpoint: str
    models: Mapping[str, str] = field(default_factory=dict)

    def supports(self, model_id: str) -> bool:
        """Whether this provider serves the public model id."""
        return model_id in self.models

    def to_dict(self, has_credential: bool = False) -> dict[str, Any]:
        """Convert to dictionary (excluding sensitive data)."""
        return {
            "name": self.name,
            "endpoint": self.endpoint,
            "models": dict(self.models),
            "has_credential": has_credential,
        }


class ModelRegistry:
    """Read-only model table keyed by id."""

    def __init__(self, entries: Iterable[ModelEntry] = ()) -> None:
        """Initialize registry.

        Args:
            entries: Model entries in configuration order

        Raises:
            CatalogError: If a model id appears twice
        """
        self._models: dict[str, ModelEntry] = {}
        for entry in entries:
            if entry.id in self._models:
                raise CatalogError(f"Duplicate model id: {entry.id}")
            self._models[entry.id] = entry

    def lookup(self, model_id: str) -> ModelEntry:
        """Get model by id.

        Args:
            model_id: Public model id

        Returns:
            Model entry

        Raises:
            ModelNotFound: If the model is not configured
        """
        try:
            return self._models[model_id]
        except KeyError:
            raise ModelNotFound(model_id) from None

    def list_models(self) -> list[ModelEntry]:
        """List models in configuration order."""
        return list(self._models.values())

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._models

    def __len__(self) -> int:
        return len(self._models)


class ProviderRegistry:
    """Read-only provider table."""

    def __init__(self, providers: Iterable[ProviderEntry] = ()) -> None:
        """Initialize registry.

        Args:
            providers: Provider entries in configuration order
        """
        self._providers: tuple[ProviderEntry, ...] = tuple(providers)

    def resolve(self, model_id: str) -> list[ProviderEntry]:
        """Find every provider that serves the given model.

        Args:
            model_id: Public model id

        Returns:
            Matching providers in configuration order, possibly empty
        """
        return [p for p in self._providers if p.supports(model_id)]

    def translate_model_id(self, provider: ProviderEntry, model_id: str) -> str:
        """Map a public model id to the provider's id.

        Args:
            provider: Provider entry
            model_id: Public model id

        Returns:
            Provider-specific model id

        Raises:
            KeyError: If the provider does not serve the model
        """
        return provider.models[model_id]

    def get_provider(self, name: str) -> ProviderEntry | None:
        """Get provider by name."""
        for provider in self._providers:
            if provider.name == name:
                return provider
        return None

    def list_providers(self) -> list[ProviderEntry]:
        """List providers in configuration order."""
        return list(self._providers)


class CredentialStore:
    """Looks up per-provider API keys.

    Explicit credentials win; otherwise the environment is searched under the
    lower-cased and then upper-cased provider name.
    """

    def __init__(
        self,
        credentials: Mapping[str, str] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._credentials = dict(credentials or {})
        self._environ = os.environ if environ is None else environ

    def get(self, provider_name: str) -> str | None:
        """Get credential for a provider, or None if not configured."""
        value = (
            self._credentials.get(provider_name)
            or self._environ.get(provider_name.lower())
            or self._environ.get(provider_name.upper())
        )
        return value or None

    def has(self, provider_name: str) -> bool:
        """Whether a credential is configured for the provider."""
        return self.get(provider_name) is not None


@dataclass(frozen=True)
class Catalog:
    """Immutable snapshot of the model and provider tables."""

    models: ModelRegistry
    providers: ProviderRegistry
    loaded_at: float = field(default_factory=time.time)


class CatalogHolder:
    """Publishes catalog snapshots.

    Readers take ``current`` once per request; reloads replace the whole
    snapshot, never mutate it.
    """

    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog
        self._lock = threading.Lock()

    @property
    def current(self) -> Catalog:
        """Current catalog snapshot."""
        return self._catalog

    def swap(self, catalog: Catalog) -> Catalog:
        """Publish a new snapshot.

        Args:
            catalog: Replacement catalog

        Returns:
            Previous catalog
        """
        with self._lock:
            previous = self._catalog
            self._catalog = catalog
        logger.info(
            "catalog.swapped",
            models=len(catalog.models),
            providers=len(catalog.providers.list_providers()),
        )
        return previous


def parse_table(content: str) -> Any:
    """Parse a JSON or YAML table.

    Args:
        content: File content

    Returns:
        Parsed document

    Raises:
        CatalogError: If neither parser accepts the content
    """
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        pass

    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise CatalogError(f"Unparseable table: {e}") from e


def read_table(path: str | Path, key: str) -> list[dict[str, Any]]:
    """Read the list of records stored under ``key`` (or a bare list)."""
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CatalogError(f"Cannot read {path}: {e}") from e

    document = parse_table(content)
    records = document.get(key) if isinstance(document, dict) else document
    if not isinstance(records, list):
        raise CatalogError(f"{path}: expected a list under '{key}'")
    return records


def build_model_entry(record: Any) -> ModelEntry:
    """Create a model entry from a table record."""
    if not isinstance(record, dict) or not record.get("id"):
        raise CatalogError(f"Model record without id: {record!r}")
    return ModelEntry(
        id=str(record["id"]),
        name=str(record.get("name") or record["id"]),
        owned_by=str(record.get("owned_by") or ""),
        premium=bool(record.get("premium", False)),
        record=record,
    )


def build_provider_entry(record: Any) -> ProviderEntry:
    """Create a provider entry from a table record."""
    if not isinstance(record, dict):
        raise CatalogError(f"Provider record is not an object: {record!r}")
    try:
        name = str(record["name"])
        endpoint = str(record["endpoint"])
    except KeyError as e:
        raise CatalogError(f"Provider record missing {e.args[0]}: {record!r}") from e
    models = record.get("models") or {}
    if not isinstance(models, dict):
        raise CatalogError(f"Provider {name}: 'models' must map public ids to provider ids")
    return ProviderEntry(
        name=name,
        endpoint=endpoint,
        models={str(k): str(v) for k, v in models.items()},
    )


def load_catalog(models_path: str | Path, providers_path: str | Path) -> Catalog:
    """Load both tables into a catalog snapshot.

    Args:
        models_path: Model table file
        providers_path: Provider table file

    Returns:
        New catalog

    Raises:
        CatalogError: If either table is unreadable or malformed
    """
    models = ModelRegistry(build_model_entry(r) for r in read_table(models_path, "models"))
    providers = ProviderRegistry(
        build_provider_entry(r) for r in read_table(providers_path, "providers")
    )

    for entry in models.list_models():
        if not providers.resolve(entry.id):
            logger.warning("catalog.model_unroutable", model=entry.id)

    logger.info(
        "catalog.loaded",
        models=len(models),
        providers=len(providers.list_providers()),
    )
    return Catalog(models=models, providers=providers)
