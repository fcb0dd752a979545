"""
Normalized result schemas shared by every adapter of a capability.

Each vendor adapter maps its raw response into one of these dataclasses; the
cache stores their `to_dict()` form and the chain rebuilds them with
`from_dict()`.
"""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union


def _known_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse the ISO-8601 style dates vendors return. None when unparseable."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip().replace("Z", "+00:00")
    # whois servers often send "2024-09-14 04:00:00 UTC"
    if text.endswith(" UTC"):
        text = text[:-4] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class SecurityReport:
    """Abuse/reputation data attached to an IP lookup by the enrichment step."""

    is_whitelisted: Optional[bool] = None
    abuse_confidence: Optional[int] = None
    country_match: Optional[bool] = None
    usage_type: Optional[str] = None
    total_reports: Optional[int] = None
    num_distinct_users: Optional[int] = None
    last_reported_at: Optional[str] = None

    @property
    def risk_level(self) -> str:
        if self.is_whitelisted:
            return "whitelisted"
        confidence = self.abuse_confidence or 0
        if confidence >= 75:
            return "high"
        if confidence >= 25:
            return "medium"
        return "low"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["risk_level"] = self.risk_level
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SecurityReport":
        return cls(**_known_fields(cls, data))


@dataclass
class GeoLookupResult:
    ip: str
    country: Optional[str] = None
    country_code: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    timezone: Optional[str] = None
    isp: Optional[str] = None
    asn: Optional[str] = None
    postal: Optional[str] = None
    currency: Optional[str] = None
    languages: Optional[str] = None
    provider: str = ""
    security: Optional[SecurityReport] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["security"] = self.security.to_dict() if self.security else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeoLookupResult":
        kwargs = _known_fields(cls, data)
        security = kwargs.get("security")
        kwargs["security"] = SecurityReport.from_dict(security) if security else None
        return cls(**kwargs)


@dataclass
class DomainContact:
    name: Optional[str] = None
    organization: Optional[str] = None
    country: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DomainContact":
        return cls(**_known_fields(cls, data))


@dataclass
class DomainLookupResult:
    domain: str
    registrar: Optional[str] = None
    registration_date: Optional[str] = None
    expiration_date: Optional[str] = None
    updated_date: Optional[str] = None
    status: List[str] = field(default_factory=list)
    name_servers: List[str] = field(default_factory=list)
    registrant: Optional[DomainContact] = None
    admin_contact: Optional[DomainContact] = None
    provider: str = ""

    def domain_age_days(self, now: Optional[datetime] = None) -> Optional[int]:
        registered = parse_timestamp(self.registration_date)
        if registered is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (now - registered).days

    def days_until_expiry(self, now: Optional[datetime] = None) -> Optional[int]:
        expires = parse_timestamp(self.expiration_date)
        if expires is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (expires - now).days

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        expires = parse_timestamp(self.expiration_date)
        if expires is None:
            return False
        return expires < (now or datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DomainLookupResult":
        kwargs = _known_fields(cls, data)
        for contact in ("registrant", "admin_contact"):
            if kwargs.get(contact):
                kwargs[contact] = DomainContact.from_dict(kwargs[contact])
        kwargs["status"] = list(kwargs.get("status") or [])
        kwargs["name_servers"] = list(kwargs.get("name_servers") or [])
        return cls(**kwargs)


LookupResult = Union[GeoLookupResult, DomainLookupResult]

RESULT_TYPES = {
    "ip": GeoLookupResult,
    "domain": DomainLookupResult,
}


@dataclass
class LookupOutcome:
    """What resolve() hands back to the chat layer for rendering."""

    capability: str
    subject: str
    result: LookupResult
    from_cache: bool
    provider: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "capability": self.capability,
            "subject": self.subject,
            "provider": self.provider,
            "from_cache": self.from_cache,
            "result": self.result.to_dict(),
        }
