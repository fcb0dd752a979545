from typing import Dict, Optional, Type

from .base import CredentialMode, LookupAdapter
from .ip_adapters import AbuseIpDbAdapter, IpApiAdapter, IpGeolocationAdapter, IpInfoAdapter
from .whois_adapters import RdapAdapter, WhoisApiAdapter

# Maps adapter name to class; capability adapter orders refer to these names
ADAPTER_CLASSES: Dict[str, Type[LookupAdapter]] = {
    cls.name: cls
    for cls in (
        IpInfoAdapter,
        IpApiAdapter,
        IpGeolocationAdapter,
        AbuseIpDbAdapter,
        WhoisApiAdapter,
        RdapAdapter,
    )
}


def build_adapter(name: str, timeout: Optional[float] = None) -> LookupAdapter:
    """Instantiate a registered adapter. Raises KeyError for unknown names."""
    return ADAPTER_CLASSES[name](timeout=timeout)


__all__ = [
    "ADAPTER_CLASSES",
    "AbuseIpDbAdapter",
    "CredentialMode",
    "IpApiAdapter",
    "IpGeolocationAdapter",
    "IpInfoAdapter",
    "LookupAdapter",
    "RdapAdapter",
    "WhoisApiAdapter",
    "build_adapter",
]
