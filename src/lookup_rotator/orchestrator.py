import logging
import os
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import httpx

from .adapters import ADAPTER_CLASSES, build_adapter
from .config import LookupConfig, load_lookup_config
from .config_exceptions import ConfigValidationError
from .credential_store import ALL_PROVIDERS, CredentialStore, SlotStatus
from .error_handler import UnknownCapabilityError
from .failure_logger import configure_failure_logger
from .models import LookupOutcome
from .provider_chain import ProviderChain
from .rate_limiter import RateLimiter
from .response_cache import ResponseCache
from .timeout_config import TimeoutConfig
from .utils.paths import get_cache_dir, get_data_file, get_default_root

lib_logger = logging.getLogger("lookup_rotator")

SETTINGS_FILENAME = "api_settings.json"


class LookupOrchestrator:
    """
    Entry point used by the chat layer.

    Holds one CredentialStore, one RateLimiter, one ResponseCache per
    capability and one ProviderChain per capability, all sharing a single
    httpx.AsyncClient. Nothing here is a module-level singleton: build an
    instance with from_config() and pass it where it is needed.
    """

    def __init__(
        self,
        config: LookupConfig,
        store: CredentialStore,
        limiter: RateLimiter,
        chains: Mapping[str, ProviderChain],
        http_client: httpx.AsyncClient,
        env_file: Optional[Union[str, Path]] = None,
        owns_client: bool = True,
    ):
        self.config = config
        self.store = store
        self.limiter = limiter
        self.chains = dict(chains)
        self.http_client = http_client
        self.env_file = Path(env_file) if env_file else None
        self._owns_client = owns_client

    @classmethod
    def from_config(
        cls,
        config: Optional[LookupConfig] = None,
        env_vars: Optional[Mapping[str, str]] = None,
        data_dir: Optional[Union[str, Path]] = None,
        clock: Callable[[], float] = time.time,
        http_client: Optional[httpx.AsyncClient] = None,
        env_file: Optional[Union[str, Path]] = None,
    ) -> "LookupOrchestrator":
        """
        Wire every component from a LookupConfig.

        Args:
            config: Parsed configuration; loaded with load_lookup_config() if None.
            env_vars: Environment holding the secrets (defaults to os.environ).
            data_dir: Root for api_settings.json, cache/ and logs/.
            clock: Time source shared by the rate limiter and the caches.
            http_client: Shared client; one is created (and later closed) if None.
            env_file: .env file updated by replace_credential().

        Raises:
            ConfigValidationError: a capability names an adapter that does not
                exist or serves a different subject kind
        """
        env_vars = os.environ if env_vars is None else env_vars
        config = config or load_lookup_config(env_vars=env_vars)
        root = Path(data_dir) if data_dir else get_default_root()

        configure_failure_logger(root / "logs")

        store = CredentialStore(
            config.providers,
            env_vars,
            get_data_file(SETTINGS_FILENAME, root),
            min_credential_length=config.min_credential_length,
            placeholder_markers=list(config.placeholder_markers),
        )
        limiter = RateLimiter.from_providers(config.providers, clock=clock)

        # Validate every adapter before any file or client is created
        adapters_by_capability = {}
        for name, capability in config.capabilities.items():
            adapters = [
                cls._make_adapter(config, adapter_name, capability.subject, name)
                for adapter_name in capability.adapters
            ]
            enrichment = None
            if capability.enrichment:
                enrichment = cls._make_adapter(
                    config, capability.enrichment, capability.subject, name
                )
            adapters_by_capability[name] = (adapters, enrichment)

        owns_client = http_client is None
        if http_client is None:
            http_client = httpx.AsyncClient(timeout=TimeoutConfig.for_adapter(10.0))

        cache_dir = get_cache_dir(root)
        chains: Dict[str, ProviderChain] = {}
        for name, capability in config.capabilities.items():
            adapters, enrichment = adapters_by_capability[name]
            cache = ResponseCache(
                cache_dir / f"{name.replace('-', '_')}_cache.json",
                ttl_seconds=config.cache_ttl_seconds,
                clock=clock,
            )
            chains[name] = ProviderChain(
                capability=name,
                subject_kind=capability.subject,
                adapters=adapters,
                store=store,
                limiter=limiter,
                cache=cache,
                http_client=http_client,
                enrichment=enrichment,
            )
            lib_logger.info(
                f"Capability '{name}': {' -> '.join(capability.adapters)}"
                + (f" (+{capability.enrichment})" if capability.enrichment else "")
            )

        return cls(
            config,
            store,
            limiter,
            chains,
            http_client,
            env_file=env_file,
            owns_client=owns_client,
        )

    @staticmethod
    def _make_adapter(config: LookupConfig, adapter_name: str, subject: str, capability: str):
        adapter_cls = ADAPTER_CLASSES.get(adapter_name)
        if adapter_cls is None:
            raise ConfigValidationError(
                f"Capability '{capability}': no adapter implementation named '{adapter_name}'"
            )
        if adapter_cls.subject_kind != subject:
            raise ConfigValidationError(
                f"Capability '{capability}': adapter '{adapter_name}' looks up "
                f"{adapter_cls.subject_kind} subjects, not {subject}"
            )
        return build_adapter(adapter_name, timeout=config.timeout_for(adapter_name))

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self):
        """Close the HTTP client if this orchestrator created it."""
        if self._owns_client and self.http_client is not None:
            await self.http_client.aclose()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def capabilities(self) -> List[str]:
        return list(self.chains)

    def _chain(self, capability: str) -> ProviderChain:
        chain = self.chains.get(capability)
        if chain is None:
            raise UnknownCapabilityError(capability)
        return chain

    async def resolve(
        self, capability: str, subject: str, caller_id: Optional[str] = None
    ) -> LookupOutcome:
        """
        Run one lookup.

        Raises:
            UnknownCapabilityError: no chain is registered for `capability`
            InvalidInputError: the subject is malformed
            AllProvidersFailedError: every adapter was skipped or failed
        """
        return await self._chain(capability).resolve(subject, caller_id)

    def purge_expired_cache(self) -> Dict[str, int]:
        return {name: chain.cache.purge_expired() for name, chain in self.chains.items()}

    # ------------------------------------------------------------------
    # Credential administration
    # ------------------------------------------------------------------

    def set_global_slot(self, provider: str, slot: int) -> None:
        self.store.set_global_active_slot(provider, slot)

    def set_caller_slot(
        self, provider: str, caller_id: str, slot: int, admin: bool = False
    ) -> None:
        self.store.set_caller_slot(provider, caller_id, slot, admin=admin)

    def reset_caller_slot(self, caller_id: str, provider: str = ALL_PROVIDERS) -> None:
        self.store.reset_caller_slot(caller_id, provider)

    def rotate(self, provider: str) -> int:
        return self.store.rotate_to_next_configured(provider)

    def list_slots(self, provider: str) -> List[SlotStatus]:
        return self.store.list_slots(provider)

    def get_caller_settings(self, caller_id: str) -> Dict[str, int]:
        return self.store.get_caller_settings(caller_id)

    def replace_credential(self, provider: str, slot: int, secret: str) -> None:
        self.store.replace_credential(provider, slot, secret, env_file=self.env_file)

    def stats(self) -> Dict[str, Any]:
        """Snapshot of slot, rate budget and cache statistics."""
        return {
            "credentials": self.store.get_stats(),
            "rate_limits": self.limiter.get_usage_stats(),
            "caches": {name: chain.cache.stats() for name, chain in self.chains.items()},
            "settings_file": self.store.get_health_info(),
        }
