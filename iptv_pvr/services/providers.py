"""
Provider registry.
One provider per name across a playlist load.
"""
import logging
from typing import Optional

from iptv_pvr.models.channel import Provider, ProviderType

logger = logging.getLogger(__name__)

PROVIDER_STRING_TOKEN_SEPARATOR = ','


class Providers:
    """Deduplicating store of providers keyed by name."""

    def __init__(self):
        self._providers: list[Provider] = []
        self._by_name: dict[str, Provider] = {}
        self._next_unique_id = 1

    def clear(self):
        self._providers = []
        self._by_name = {}
        self._next_unique_id = 1

    def add_provider(self, name: str) -> Optional[Provider]:
        """
        Register a provider name.

        Returns the existing provider for a known name, a new one otherwise,
        and None for an empty name. The returned object is the stored one so
        the caller may update its type, icon, countries and languages.
        """
        if not name:
            return None

        existing = self._by_name.get(name)
        if existing is not None:
            return existing

        provider = Provider(unique_id=self._next_unique_id, name=name)
        self._next_unique_id += 1
        self._providers.append(provider)
        self._by_name[name] = provider
        logger.debug(f"Added provider '{name}' with unique id {provider.unique_id}")
        return provider

    def get_provider(self, unique_id: int) -> Optional[Provider]:
        for provider in self._providers:
            if provider.unique_id == unique_id:
                return provider
        return None

    def get_providers(self) -> list[Provider]:
        return [p.model_copy(deep=True) for p in self._providers]

    def get_num_providers(self) -> int:
        return len(self._providers)


def parse_provider_type(value: str) -> ProviderType:
    """Map a provider-type attribute to a ProviderType, UNKNOWN if unrecognised."""
    try:
        return ProviderType(value.lower())
    except ValueError:
        return ProviderType.UNKNOWN


def split_provider_tokens(value: str) -> list[str]:
    return [token.strip() for token in value.split(PROVIDER_STRING_TOKEN_SEPARATOR) if token.strip()]
