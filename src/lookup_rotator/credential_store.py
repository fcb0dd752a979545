import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from dotenv import set_key

from .config import ProviderSpec
from .error_handler import (
    InvalidSlotError,
    NoAlternativeSlotError,
    NotConfiguredError,
    PersistenceError,
    UnknownProviderError,
    mask_credential,
)
from .utils.resilient_io import ResilientStateWriter, load_json_document

lib_logger = logging.getLogger("lookup_rotator")

ALL_PROVIDERS = "all"

EMPTY_SETTINGS: Dict[str, Any] = {
    "per_caller_overrides": {},
    "global_defaults": {},
}


@dataclass(frozen=True)
class SlotStatus:
    """Introspection row for one credential slot."""

    slot: int
    env_name: Optional[str]
    configured: bool
    is_active_globally: bool
    masked: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slot": self.slot,
            "env_name": self.env_name,
            "configured": self.configured,
            "is_active_globally": self.is_active_globally,
            "masked": self.masked,
        }


class CredentialStore:
    """
    Owns the credential slots of every provider and which slot is active.

    Secrets are read once from an environment mapping at construction.
    Active-slot selection has two layers:

    1. A per-caller override (durable, caller-settable, caller-resettable)
    2. A global default per provider (durable, administratively settable)

    The effective slot for (provider, caller) is the caller override if present
    and in range, else the global default, else slot 1.

    Both layers live in one JSON settings document that this class alone
    writes:

        {"per_caller_overrides": {caller: {provider: slot}},
         "global_defaults": {provider: slot}}

    A failed durable write raises PersistenceError after the in-memory update
    has been applied; memory is not rolled back.
    """

    def __init__(
        self,
        providers: Mapping[str, ProviderSpec],
        env_vars: Mapping[str, str],
        settings_path: Union[Path, str],
        min_credential_length: int = 10,
        placeholder_markers: Optional[List[str]] = None,
        writer: Optional[ResilientStateWriter] = None,
    ):
        """
        Initialize the CredentialStore.

        Args:
            providers: Provider registry keyed by provider name.
            env_vars: Environment variables holding the secrets (typically os.environ).
            settings_path: JSON document holding overrides and global defaults.
            min_credential_length: Secrets must be longer than this to count as configured.
            placeholder_markers: Substrings that mark a value as a template placeholder.
            writer: Optional pre-built writer for the settings file.
        """
        self.providers = dict(providers)
        self.settings_path = Path(settings_path)
        self.min_credential_length = min_credential_length
        self.placeholder_markers = tuple(
            ("your_", "_here") if placeholder_markers is None else placeholder_markers
        )
        self._lock = threading.RLock()
        self._writer = writer or ResilientStateWriter(self.settings_path, lib_logger)

        self._secrets: Dict[str, Dict[int, Optional[str]]] = {}
        for name, spec in self.providers.items():
            self._secrets[name] = {
                slot: (env_vars.get(spec.env_name(slot)) if spec.env_name(slot) else None)
                for slot in spec.slots
            }

        self._settings = self._load_settings(env_vars)

        configured = {
            name: len(self.available_slots(name)) for name in self.providers
        }
        lib_logger.info(
            "Credential store ready: "
            + ", ".join(f"{name}={count}" for name, count in configured.items())
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load_settings(self, env_vars: Mapping[str, str]) -> Dict[str, Any]:
        """
        Read the settings document, falling back to an empty one.

        Global defaults start from each provider's "current slot" variable and
        are then overridden by whatever the settings file holds. Out-of-range
        or malformed entries are dropped with a warning.
        """
        raw = load_json_document(self.settings_path, EMPTY_SETTINGS, lib_logger)

        global_defaults: Dict[str, int] = {}
        for name, spec in self.providers.items():
            if spec.current_slot_env:
                slot = self._coerce_slot(spec, env_vars.get(spec.current_slot_env))
                if slot is not None:
                    global_defaults[name] = slot

        for name, value in self._section(raw, "global_defaults").items():
            spec = self.providers.get(name)
            slot = self._coerce_slot(spec, value) if spec else None
            if slot is None:
                lib_logger.warning(
                    f"Ignoring invalid global default {name}={value!r} in {self.settings_path.name}"
                )
                continue
            global_defaults[name] = slot

        overrides: Dict[str, Dict[str, int]] = {}
        for caller_id, selections in self._section(raw, "per_caller_overrides").items():
            if not isinstance(selections, dict):
                continue
            kept = {}
            for name, value in selections.items():
                spec = self.providers.get(name)
                slot = self._coerce_slot(spec, value) if spec else None
                if slot is not None:
                    kept[name] = slot
            if kept:
                overrides[str(caller_id)] = kept

        return {"per_caller_overrides": overrides, "global_defaults": global_defaults}

    def _section(self, raw: Dict[str, Any], key: str) -> Dict[str, Any]:
        section = raw.get(key)
        if section is None:
            return {}
        if not isinstance(section, dict):
            lib_logger.warning(
                f"Ignoring '{key}' in {self.settings_path.name}: expected an object, "
                f"got {type(section).__name__}"
            )
            return {}
        return section

    @staticmethod
    def _coerce_slot(spec: Optional[ProviderSpec], value: Any) -> Optional[int]:
        if spec is None or value is None or isinstance(value, bool):
            return None
        try:
            slot = int(value)
        except (TypeError, ValueError):
            return None
        return slot if 1 <= slot <= spec.capacity else None

    def _save(self) -> None:
        """Persist the settings document. Caller holds the lock."""
        try:
            self._writer.write(self._settings)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(str(self.settings_path), e) from e

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def _spec(self, provider: str) -> ProviderSpec:
        spec = self.providers.get(provider)
        if spec is None:
            raise UnknownProviderError(provider)
        return spec

    def _validate_range(self, spec: ProviderSpec, slot: Any) -> int:
        coerced = self._coerce_slot(spec, slot)
        if coerced is None:
            raise InvalidSlotError(
                spec.name,
                slot,
                f"Slot for {spec.name} must be between 1 and {spec.capacity}, got {slot!r}",
            )
        return coerced

    def _is_usable(self, secret: Optional[str]) -> bool:
        if not secret:
            return False
        if any(marker in secret for marker in self.placeholder_markers):
            return False
        return len(secret) > self.min_credential_length

    def is_configured(self, provider: str, slot: int) -> bool:
        """True when `slot` holds a present, non-placeholder, long-enough secret."""
        spec = self._spec(provider)
        if self._coerce_slot(spec, slot) is None:
            return False
        with self._lock:
            return self._is_usable(self._secrets[provider].get(int(slot)))

    def available_slots(self, provider: str) -> List[int]:
        """Configured slot numbers, ascending."""
        spec = self._spec(provider)
        with self._lock:
            return [
                slot
                for slot in spec.slots
                if self._is_usable(self._secrets[provider].get(slot))
            ]

    # ------------------------------------------------------------------
    # Active slot resolution
    # ------------------------------------------------------------------

    def get_global_slot(self, provider: str) -> int:
        spec = self._spec(provider)
        with self._lock:
            slot = self._settings["global_defaults"].get(provider)
            return slot if self._coerce_slot(spec, slot) is not None else 1

    def get_active_slot(self, provider: str, caller_id: Optional[str] = None) -> int:
        """
        Resolve the effective slot without requiring it to be configured.

        Caller override if present and in range, else global default, else 1.
        """
        spec = self._spec(provider)
        with self._lock:
            if caller_id is not None:
                override = (
                    self._settings["per_caller_overrides"]
                    .get(str(caller_id), {})
                    .get(provider)
                )
                if self._coerce_slot(spec, override) is not None:
                    return override
            return self.get_global_slot(provider)

    def get_active_credential(
        self, provider: str, caller_id: Optional[str] = None
    ) -> str:
        """
        Return the secret of the effective slot.

        Raises:
            NotConfiguredError: the resolved slot has no usable secret
        """
        with self._lock:
            slot = self.get_active_slot(provider, caller_id)
            secret = self._secrets[provider].get(slot)
            if not self._is_usable(secret):
                raise NotConfiguredError(provider, slot)
            return secret

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_global_active_slot(self, provider: str, slot: int) -> None:
        """
        Administratively select the global default slot.

        The slot need not be configured; it only has to be within capacity.

        Raises:
            InvalidSlotError: slot outside [1, capacity]
            PersistenceError: the settings file could not be written
        """
        spec = self._spec(provider)
        slot = self._validate_range(spec, slot)
        with self._lock:
            self._settings["global_defaults"][provider] = slot
            lib_logger.info(f"Global active slot for {provider} set to {slot}")
            self._save()

    def set_caller_slot(
        self, provider: str, caller_id: str, slot: int, *, admin: bool = False
    ) -> None:
        """
        Store a per-caller override.

        Caller-initiated sets must point at a configured slot; admin sets may
        bypass that check (the range check always applies). A rejected write
        leaves the caller's current selection untouched.

        Raises:
            InvalidSlotError: out of range, or unconfigured and not admin
            PersistenceError: the settings file could not be written
        """
        spec = self._spec(provider)
        slot = self._validate_range(spec, slot)
        with self._lock:
            if not admin and not self._is_usable(self._secrets[provider].get(slot)):
                raise InvalidSlotError(
                    provider,
                    slot,
                    f"{provider} slot {slot} is not configured; "
                    f"available: {self.available_slots(provider) or 'none'}",
                )
            overrides = self._settings["per_caller_overrides"]
            overrides.setdefault(str(caller_id), {})[provider] = slot
            lib_logger.info(f"Caller {caller_id} selected {provider} slot {slot}")
            self._save()

    def reset_caller_slot(self, caller_id: str, provider: str = ALL_PROVIDERS) -> None:
        """
        Remove one or all overrides of a caller. Idempotent: resetting a caller
        with nothing stored succeeds without touching the settings file.

        Raises:
            PersistenceError: the settings file could not be written
        """
        if provider != ALL_PROVIDERS:
            self._spec(provider)
        caller_id = str(caller_id)
        with self._lock:
            overrides = self._settings["per_caller_overrides"]
            if caller_id not in overrides:
                return
            if provider == ALL_PROVIDERS:
                del overrides[caller_id]
            else:
                if provider not in overrides[caller_id]:
                    return
                del overrides[caller_id][provider]
                if not overrides[caller_id]:
                    del overrides[caller_id]
            lib_logger.info(f"Reset {provider} slot override(s) for caller {caller_id}")
            self._save()

    def rotate_to_next_configured(self, provider: str) -> int:
        """
        Advance the global slot to the next configured one.

        Scans current+1 .. current+capacity (wrapping) and picks the first
        configured slot that differs from the current one.

        Returns:
            The new global slot

        Raises:
            NoAlternativeSlotError: no other configured slot exists
            PersistenceError: the settings file could not be written
        """
        spec = self._spec(provider)
        with self._lock:
            current = self.get_global_slot(provider)
            for offset in range(1, spec.capacity + 1):
                candidate = (current + offset - 1) % spec.capacity + 1
                if candidate != current and self._is_usable(
                    self._secrets[provider].get(candidate)
                ):
                    self._settings["global_defaults"][provider] = candidate
                    lib_logger.info(
                        f"Rotated {provider} from slot {current} to slot {candidate}"
                    )
                    self._save()
                    return candidate
        raise NoAlternativeSlotError(provider, current)

    def replace_credential(
        self,
        provider: str,
        slot: int,
        secret: str,
        env_file: Optional[Union[Path, str]] = None,
    ) -> None:
        """
        Administratively replace the secret of one slot for the whole process.

        When `env_file` is given the new value is also written to it, so the
        replacement survives a restart.

        Raises:
            InvalidSlotError: slot outside [1, capacity] or provider takes no secret
            PersistenceError: the env file could not be updated
        """
        spec = self._spec(provider)
        slot = self._validate_range(spec, slot)
        env_name = spec.env_name(slot)
        if env_name is None:
            raise InvalidSlotError(provider, slot, f"{provider} does not use credentials")
        with self._lock:
            self._secrets[provider][slot] = secret
            lib_logger.info(
                f"Replaced credential {env_name} ({mask_credential(secret)})"
            )
            if env_file is not None:
                try:
                    Path(env_file).touch(exist_ok=True)
                    set_key(str(env_file), env_name, secret)
                except OSError as e:
                    raise PersistenceError(str(env_file), e) from e

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def list_slots(self, provider: str) -> List[SlotStatus]:
        spec = self._spec(provider)
        with self._lock:
            active = self.get_global_slot(provider)
            rows = []
            for slot in spec.slots:
                secret = self._secrets[provider].get(slot)
                usable = self._is_usable(secret)
                rows.append(
                    SlotStatus(
                        slot=slot,
                        env_name=spec.env_name(slot),
                        configured=usable,
                        is_active_globally=slot == active,
                        masked=mask_credential(secret) if usable else "-",
                    )
                )
            return rows

    def get_caller_settings(self, caller_id: str) -> Dict[str, int]:
        """Effective slot per multi-slot provider for one caller."""
        return {
            name: self.get_active_slot(name, caller_id)
            for name, spec in self.providers.items()
            if spec.is_multi_slot
        }

    def get_stats(self) -> Dict[str, Dict[str, int]]:
        """
        Per-provider slot statistics.

        `available` counts configured slots other than the active one, so an
        unconfigured active slot does not reduce it.
        """
        stats = {}
        for name, spec in self.providers.items():
            with self._lock:
                configured = self.available_slots(name)
                active = self.get_global_slot(name)
            stats[name] = {
                "total": spec.capacity,
                "configured": len(configured),
                "active": active,
                "available": len([s for s in configured if s != active]),
            }
        return stats

    def get_health_info(self) -> Dict[str, Any]:
        return self._writer.get_health_info()
