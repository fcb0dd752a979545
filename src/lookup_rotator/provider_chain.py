import logging
from typing import Callable, List, Optional, Sequence, Tuple

import httpx

from .adapters.base import CredentialMode, LookupAdapter
from .credential_store import CredentialStore
from .error_handler import (
    AdapterAttempt,
    AllProvidersFailedError,
    FailureReason,
    NotConfiguredError,
    PersistenceError,
    RateLimitExceededError,
    classify_adapter_error,
)
from .failure_logger import log_failure
from .models import RESULT_TYPES, LookupOutcome, LookupResult
from .rate_limiter import RateLimiter
from .response_cache import CacheState, ResponseCache
from .validation import NORMALIZERS

lib_logger = logging.getLogger("lookup_rotator")


class ProviderChain:
    """
    Ordered fallback over the adapters of one capability.

    resolve() validates the subject, serves fresh cache hits, then tries each
    adapter in priority order behind a credential gate and a rate gate. The
    first success is enriched (when the capability has an enrichment adapter),
    written to the cache and returned. Adapter failures never escape: when no
    adapter succeeds, AllProvidersFailedError carries every adapter's reason.
    """

    def __init__(
        self,
        capability: str,
        subject_kind: str,
        adapters: Sequence[LookupAdapter],
        store: CredentialStore,
        limiter: RateLimiter,
        cache: ResponseCache,
        http_client: httpx.AsyncClient,
        enrichment: Optional[LookupAdapter] = None,
    ):
        if subject_kind not in NORMALIZERS:
            raise ValueError(f"Unsupported subject kind: {subject_kind}")
        self.capability = capability
        self.subject_kind = subject_kind
        self.adapters = list(adapters)
        self.enrichment = enrichment
        self.store = store
        self.limiter = limiter
        self.cache = cache
        self.http_client = http_client
        self._normalize_subject: Callable[[str], str] = NORMALIZERS[subject_kind]
        self._result_type = RESULT_TYPES[subject_kind]

    @property
    def adapter_names(self) -> List[str]:
        return [adapter.name for adapter in self.adapters]

    def _credential_for(
        self, adapter: LookupAdapter, caller_id: Optional[str]
    ) -> Tuple[bool, Optional[str]]:
        """
        Credential gate.

        Returns (allowed, credential). Required adapters without a usable key
        are not allowed; optional adapters fall back to a keyless call.
        """
        if adapter.credential_mode is CredentialMode.NONE:
            return True, None
        try:
            return True, self.store.get_active_credential(adapter.provider, caller_id)
        except NotConfiguredError:
            if adapter.credential_mode is CredentialMode.OPTIONAL:
                return True, None
            return False, None

    def _from_cache(self, subject: str) -> Optional[LookupOutcome]:
        cached = self.cache.lookup(subject)
        if cached.state is CacheState.STALE:
            lib_logger.debug(
                f"Cache entry for {self.capability} '{subject}' expired "
                f"({cached.age_seconds:.0f}s old)"
            )
        if cached.state is not CacheState.FRESH:
            return None
        try:
            result = self._result_type.from_dict(cached.value)
        except (TypeError, ValueError) as e:
            lib_logger.warning(f"Ignoring unreadable cache entry for '{subject}': {e}")
            return None
        lib_logger.info(f"Cache hit for {self.capability} '{subject}'")
        return LookupOutcome(
            capability=self.capability,
            subject=subject,
            result=result,
            from_cache=True,
            provider=result.provider,
        )

    async def _enrich(
        self, result: LookupResult, subject: str, caller_id: Optional[str]
    ) -> None:
        """Attach reputation data to `result`. Every failure is logged and dropped."""
        adapter = self.enrichment
        allowed, credential = self._credential_for(adapter, caller_id)
        if not allowed:
            lib_logger.debug(f"Skipping {adapter.name} enrichment: no credential configured")
            return
        try:
            self.limiter.acquire(adapter.provider)
        except RateLimitExceededError:
            lib_logger.info(f"Skipping {adapter.name} enrichment: local rate limit reached")
            return
        try:
            result.security = await adapter.lookup(self.http_client, subject, credential)
        except Exception as e:
            classified = classify_adapter_error(e)
            log_failure(adapter.name, subject, 1, classified, credential)

    async def resolve(self, subject: str, caller_id: Optional[str] = None) -> LookupOutcome:
        """
        Resolve one subject through the chain.

        Raises:
            InvalidInputError: the subject failed validation; no adapter was tried
            AllProvidersFailedError: every adapter was skipped or failed
        """
        subject = self._normalize_subject(subject)

        outcome = self._from_cache(subject)
        if outcome is not None:
            return outcome

        attempts: List[AdapterAttempt] = []
        for position, adapter in enumerate(self.adapters, start=1):
            allowed, credential = self._credential_for(adapter, caller_id)
            if not allowed:
                lib_logger.debug(f"{adapter.name}: no usable credential, skipping")
                attempts.append(
                    AdapterAttempt(adapter.name, adapter.provider, FailureReason.NOT_CONFIGURED)
                )
                continue

            try:
                self.limiter.acquire(adapter.provider)
            except RateLimitExceededError:
                lib_logger.info(f"{adapter.name}: local rate limit reached, skipping")
                attempts.append(
                    AdapterAttempt(adapter.name, adapter.provider, FailureReason.RATE_LIMITED)
                )
                continue

            try:
                result = await adapter.lookup(self.http_client, subject, credential)
            except Exception as e:
                classified = classify_adapter_error(e)
                log_failure(adapter.name, subject, position, classified, credential)
                attempts.append(
                    AdapterAttempt(
                        adapter.name,
                        adapter.provider,
                        FailureReason.ADAPTER_FAILURE,
                        classified.detail,
                    )
                )
                continue

            if attempts:
                lib_logger.info(
                    f"{self.capability} '{subject}' served by fallback {adapter.name} "
                    f"after {len(attempts)} skipped/failed adapter(s)"
                )

            if self.enrichment is not None:
                await self._enrich(result, subject, caller_id)

            try:
                self.cache.put(subject, result.to_dict())
            except PersistenceError as e:
                lib_logger.error(f"Lookup succeeded but cache write failed: {e}")

            return LookupOutcome(
                capability=self.capability,
                subject=subject,
                result=result,
                from_cache=False,
                provider=adapter.name,
            )

        error = AllProvidersFailedError(self.capability, subject, attempts)
        lib_logger.error(error.build_log_message())
        raise error
