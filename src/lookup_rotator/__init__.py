from .adapters import ADAPTER_CLASSES
from .config import LookupConfig, load_lookup_config
from .credential_store import CredentialStore
from .error_handler import (
    AllProvidersFailedError,
    InvalidInputError,
    InvalidSlotError,
    LookupRotatorError,
    NoAlternativeSlotError,
    NotConfiguredError,
    PersistenceError,
    RateLimitExceededError,
    UnknownCapabilityError,
    UnknownProviderError,
)
from .models import DomainLookupResult, GeoLookupResult, LookupOutcome
from .orchestrator import LookupOrchestrator
from .provider_chain import ProviderChain
from .rate_limiter import RateLimiter
from .response_cache import ResponseCache

__all__ = [
    "ADAPTER_CLASSES",
    "AllProvidersFailedError",
    "CredentialStore",
    "DomainLookupResult",
    "GeoLookupResult",
    "InvalidInputError",
    "InvalidSlotError",
    "LookupConfig",
    "LookupOrchestrator",
    "LookupOutcome",
    "LookupRotatorError",
    "NoAlternativeSlotError",
    "NotConfiguredError",
    "PersistenceError",
    "ProviderChain",
    "RateLimitExceededError",
    "RateLimiter",
    "ResponseCache",
    "UnknownCapabilityError",
    "UnknownProviderError",
    "load_lookup_config",
]
