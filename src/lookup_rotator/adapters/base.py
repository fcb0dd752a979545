from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from ..error_handler import AdapterFailure
from ..timeout_config import TimeoutConfig


class CredentialMode(str, Enum):
    """How an adapter uses the credential store."""

    REQUIRED = "required"  # skip the adapter when no usable key exists
    OPTIONAL = "optional"  # use the key when present, call keyless otherwise
    NONE = "none"  # never asks for a key


class LookupAdapter(ABC):
    """
    One backend vendor for a capability.

    Subclasses implement fetch() (the outbound HTTP call) and normalize()
    (vendor JSON -> shared result schema). The provider chain handles
    credentials, rate limits, caching and failure bookkeeping.
    """

    # Adapter name, also the provider name used for credentials and budgets
    name: str = ""

    # "ip" or "domain"
    subject_kind: str = ""

    credential_mode: CredentialMode = CredentialMode.REQUIRED

    default_timeout: float = 10.0

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = float(timeout if timeout is not None else self.default_timeout)

    @property
    def provider(self) -> str:
        return self.name

    async def lookup(
        self, client: httpx.AsyncClient, subject: str, credential: Optional[str]
    ) -> Any:
        """Fetch and normalize in one step."""
        raw = await self.fetch(client, subject, credential)
        return self.normalize(raw, subject)

    @abstractmethod
    async def fetch(
        self, client: httpx.AsyncClient, subject: str, credential: Optional[str]
    ) -> Dict[str, Any]:
        """Perform the outbound call and return the decoded vendor payload."""
        raise NotImplementedError

    @abstractmethod
    def normalize(self, raw: Dict[str, Any], subject: str) -> Any:
        """Map the vendor payload into the capability's result dataclass."""
        raise NotImplementedError

    async def _get_json(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        GET `url` within this adapter's timeout and decode a JSON object.

        Raises:
            httpx.HTTPStatusError: non-2xx response
            httpx.TimeoutException, httpx.TransportError: network failure
            AdapterFailure: the body is not a JSON object
        """
        response = await client.get(
            url,
            params=params,
            headers=headers,
            timeout=TimeoutConfig.for_adapter(self.timeout),
            follow_redirects=True,
        )
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as e:
            raise AdapterFailure(self.name, "parse", f"{self.name} returned non-JSON body") from e
        if not isinstance(data, dict):
            raise AdapterFailure(self.name, "parse", f"{self.name} returned {type(data).__name__}")
        return data


def to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def to_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)
