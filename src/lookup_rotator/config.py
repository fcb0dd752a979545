# src/lookup_rotator/config.py
"""
Lookup configuration: providers, capabilities, rate budgets and timeouts.

Built-in defaults describe the providers the bot ships with. A YAML file
(LOOKUP_CONFIG_PATH or an explicit path) is deep-merged over them, so an
operator only writes the keys they want to change:

    cache:
      ttl_seconds: 3600
    providers:
      ipinfo:
        rate_limit: {requests: 20000, window: monthly}
    capabilities:
      ip-lookup:
        adapters: [ipapi, ipinfo]
"""

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from .config_exceptions import ConfigLoadError, ConfigValidationError

lib_logger = logging.getLogger("lookup_rotator")

DAY_SECONDS = 24 * 60 * 60

# Named window lengths accepted in rate_limit.window
WINDOW_ALIASES = {
    "minute": 60,
    "hourly": 60 * 60,
    "daily": DAY_SECONDS,
    "monthly": 30 * DAY_SECONDS,
}

SUBJECT_KINDS = ("ip", "domain")

DEFAULT_CONFIG: Dict[str, Any] = {
    "credentials": {
        "min_length": 10,
        "placeholder_markers": ["your_", "_here"],
    },
    "cache": {
        "ttl_seconds": DAY_SECONDS,
    },
    "providers": {
        "gemini": {
            "capacity": 5,
            "capability": "ai-chat",
            "env": "GEMINI_API_KEY_{slot}",
            "current_slot_env": "CURRENT_GEMINI_API_KEY",
        },
        "groq": {
            "capacity": 5,
            "capability": "ai-chat",
            "env": "GROQ_API_KEY_{slot}",
            "current_slot_env": "CURRENT_GROQ_API_KEY",
        },
        "ipinfo": {
            "capacity": 1,
            "capability": "ip-lookup",
            "env": "IPINFO_API_KEY",
            "rate_limit": {"requests": 50000, "window": "monthly"},
        },
        "ipapi": {
            "capacity": 1,
            "capability": "ip-lookup",
            "env": "IPAPI_API_KEY",
            "rate_limit": {"requests": 1000, "window": "monthly"},
        },
        "ipgeolocation": {
            "capacity": 1,
            "capability": "ip-lookup",
            "env": "IP_GEOLOCATION_API_KEY",
            "rate_limit": {"requests": 1000, "window": "monthly"},
        },
        "abuseipdb": {
            "capacity": 1,
            "capability": "ip-reputation",
            "env": "ABUSEIPDB_API_KEY",
            "rate_limit": {"requests": 1000, "window": "daily"},
        },
        "whoisapi": {
            "capacity": 1,
            "capability": "domain-lookup",
            "env": "WHOISAPI_KEY",
            "rate_limit": {"requests": 1000, "window": "monthly"},
        },
        "rdap": {
            "capacity": 1,
            "capability": "domain-lookup",
            "env": None,
            "rate_limit": {"requests": 1000, "window": "monthly"},
        },
    },
    "capabilities": {
        "ip-lookup": {
            "subject": "ip",
            "adapters": ["ipinfo", "ipapi", "ipgeolocation"],
            "enrichment": "abuseipdb",
        },
        "domain-lookup": {
            "subject": "domain",
            "adapters": ["whoisapi", "rdap"],
        },
    },
    "timeouts": {
        "default": 10.0,
        "ipinfo": 10.0,
        "ipapi": 10.0,
        "ipgeolocation": 10.0,
        "abuseipdb": 10.0,
        "whoisapi": 15.0,
        "rdap": 15.0,
    },
}


@dataclass(frozen=True)
class ProviderSpec:
    """
    A credential-bearing provider.

    Slot-range and rotation logic is driven by `capacity` alone; the only
    per-provider data is how slots map to environment variable names.
    """

    name: str
    capacity: int
    capability: str
    env_template: Optional[str] = None
    current_slot_env: Optional[str] = None
    rate_limit: Optional[int] = None
    window_seconds: Optional[float] = None

    @property
    def is_multi_slot(self) -> bool:
        return self.capacity > 1

    @property
    def slots(self) -> range:
        return range(1, self.capacity + 1)

    def env_name(self, slot: int) -> Optional[str]:
        """Environment variable holding the secret for `slot`."""
        if self.env_template is None:
            return None
        return self.env_template.format(slot=slot)


@dataclass(frozen=True)
class CapabilitySpec:
    """A logical lookup served by an ordered group of adapters."""

    name: str
    subject: str
    adapters: Tuple[str, ...]
    enrichment: Optional[str] = None


@dataclass
class LookupConfig:
    providers: Dict[str, ProviderSpec]
    capabilities: Dict[str, CapabilitySpec]
    timeouts: Dict[str, float] = field(default_factory=dict)
    cache_ttl_seconds: float = DAY_SECONDS
    min_credential_length: int = 10
    placeholder_markers: Tuple[str, ...] = ("your_", "_here")

    def timeout_for(self, adapter: str) -> float:
        return float(self.timeouts.get(adapter, self.timeouts.get("default", 10.0)))

    def providers_for(self, capability: str) -> List[ProviderSpec]:
        return [p for p in self.providers.values() if p.capability == capability]


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of `base` with `override` merged in recursively."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _parse_window(provider: str, window: Any) -> float:
    if isinstance(window, (int, float)) and not isinstance(window, bool):
        if window <= 0:
            raise ConfigValidationError(
                f"Provider '{provider}': rate_limit.window must be positive"
            )
        return float(window)
    if isinstance(window, str) and window.lower() in WINDOW_ALIASES:
        return float(WINDOW_ALIASES[window.lower()])
    raise ConfigValidationError(
        f"Provider '{provider}': unknown rate_limit.window {window!r} "
        f"(expected seconds or one of {sorted(WINDOW_ALIASES)})"
    )


def _build_provider(name: str, raw: Mapping[str, Any]) -> ProviderSpec:
    if not isinstance(raw, Mapping):
        raise ConfigValidationError(f"Provider '{name}' must be a mapping")

    capacity = raw.get("capacity", 1)
    if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity < 1:
        raise ConfigValidationError(
            f"Provider '{name}': capacity must be a positive integer, got {capacity!r}"
        )

    capability = raw.get("capability")
    if not capability or not isinstance(capability, str):
        raise ConfigValidationError(f"Provider '{name}': capability is required")

    env_template = raw.get("env")
    if env_template is not None and capacity > 1 and "{slot}" not in env_template:
        raise ConfigValidationError(
            f"Provider '{name}': multi-slot env name must contain '{{slot}}'"
        )

    rate_limit = None
    window_seconds = None
    limit_cfg = raw.get("rate_limit")
    if limit_cfg:
        if not isinstance(limit_cfg, Mapping):
            raise ConfigValidationError(f"Provider '{name}': rate_limit must be a mapping")
        requests = limit_cfg.get("requests")
        if not isinstance(requests, int) or isinstance(requests, bool) or requests < 1:
            raise ConfigValidationError(
                f"Provider '{name}': rate_limit.requests must be a positive integer"
            )
        rate_limit = requests
        window_seconds = _parse_window(name, limit_cfg.get("window", "monthly"))

    return ProviderSpec(
        name=name,
        capacity=capacity,
        capability=capability,
        env_template=env_template,
        current_slot_env=raw.get("current_slot_env"),
        rate_limit=rate_limit,
        window_seconds=window_seconds,
    )


def _build_capability(
    name: str, raw: Mapping[str, Any], providers: Mapping[str, ProviderSpec]
) -> CapabilitySpec:
    if not isinstance(raw, Mapping):
        raise ConfigValidationError(f"Capability '{name}' must be a mapping")

    subject = raw.get("subject")
    if subject not in SUBJECT_KINDS:
        raise ConfigValidationError(
            f"Capability '{name}': subject must be one of {SUBJECT_KINDS}, got {subject!r}"
        )

    adapters = raw.get("adapters") or []
    if not isinstance(adapters, list) or not adapters:
        raise ConfigValidationError(
            f"Capability '{name}': adapters must be a non-empty list"
        )
    for adapter in adapters:
        if adapter not in providers:
            raise ConfigValidationError(
                f"Capability '{name}': adapter '{adapter}' has no provider entry"
            )
    if len(set(adapters)) != len(adapters):
        raise ConfigValidationError(f"Capability '{name}': duplicate adapters")

    enrichment = raw.get("enrichment")
    if enrichment is not None and enrichment not in providers:
        raise ConfigValidationError(
            f"Capability '{name}': enrichment '{enrichment}' has no provider entry"
        )

    return CapabilitySpec(
        name=name, subject=subject, adapters=tuple(adapters), enrichment=enrichment
    )


def build_lookup_config(raw: Mapping[str, Any]) -> LookupConfig:
    """Validate a merged configuration document and build a LookupConfig."""
    providers_raw = raw.get("providers") or {}
    providers = {
        name: _build_provider(name, spec) for name, spec in providers_raw.items()
    }

    capabilities_raw = raw.get("capabilities") or {}
    capabilities = {
        name: _build_capability(name, spec, providers)
        for name, spec in capabilities_raw.items()
    }

    timeouts: Dict[str, float] = {}
    for adapter, seconds in (raw.get("timeouts") or {}).items():
        try:
            value = float(seconds)
        except (TypeError, ValueError):
            raise ConfigValidationError(
                f"Timeout for '{adapter}' must be a number, got {seconds!r}"
            )
        if value <= 0:
            raise ConfigValidationError(f"Timeout for '{adapter}' must be positive")
        timeouts[adapter] = value

    credentials = raw.get("credentials") or {}
    cache = raw.get("cache") or {}

    try:
        ttl = float(cache.get("ttl_seconds", DAY_SECONDS))
    except (TypeError, ValueError):
        raise ConfigValidationError("cache.ttl_seconds must be a number")
    if ttl <= 0:
        raise ConfigValidationError("cache.ttl_seconds must be positive")

    return LookupConfig(
        providers=providers,
        capabilities=capabilities,
        timeouts=timeouts,
        cache_ttl_seconds=ttl,
        min_credential_length=int(credentials.get("min_length", 10)),
        placeholder_markers=tuple(credentials.get("placeholder_markers") or ()),
    )


def load_lookup_config(
    path: Optional[Union[str, Path]] = None,
    env_vars: Optional[Mapping[str, str]] = None,
) -> LookupConfig:
    """
    Load the lookup configuration.

    Args:
        path: YAML file merged over DEFAULT_CONFIG. If None, LOOKUP_CONFIG_PATH
              is used when set; otherwise the defaults apply unchanged.
        env_vars: Environment mapping (typically os.environ)

    Raises:
        ConfigLoadError: the file is missing, unreadable or not valid YAML
        ConfigValidationError: the merged document is invalid
    """
    env_vars = os.environ if env_vars is None else env_vars
    raw = copy.deepcopy(DEFAULT_CONFIG)

    config_path = path or env_vars.get("LOOKUP_CONFIG_PATH")
    if config_path:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigLoadError(f"Lookup config not found: {config_path}")
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                override = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigLoadError(f"Failed to load {config_path}: {e}") from e
        if not isinstance(override, Mapping):
            raise ConfigValidationError(
                f"{config_path.name} must contain a mapping at the top level"
            )
        raw = _deep_merge(raw, override)
        lib_logger.info(f"Loaded lookup config overrides from {config_path}")

    ttl_override = env_vars.get("LOOKUP_CACHE_TTL_SECONDS")
    if ttl_override:
        raw["cache"] = dict(raw.get("cache") or {}, ttl_seconds=ttl_override)

    return build_lookup_config(raw)
