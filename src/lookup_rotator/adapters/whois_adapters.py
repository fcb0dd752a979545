# src/lookup_rotator/adapters/whois_adapters.py

from typing import Any, Dict, List, Optional

import httpx

from ..error_handler import AdapterFailure
from ..models import DomainLookupResult, DomainContact
from .base import CredentialMode, LookupAdapter, to_str


def _as_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        # whoisapi joins multiple statuses with spaces
        return [part for part in value.split() if part]
    if isinstance(value, dict):
        return _as_list(value.get("hostNames"))
    return [str(v) for v in value if v]


class WhoisApiAdapter(LookupAdapter):
    """Keyed whois service; record may be wrapped in a "WhoisRecord" envelope."""

    name = "whoisapi"
    subject_kind = "domain"
    credential_mode = CredentialMode.REQUIRED
    default_timeout = 15.0
    url = "https://www.whoisapi.com/whoisserver/WhoisService"

    async def fetch(
        self, client: httpx.AsyncClient, subject: str, credential: Optional[str]
    ) -> Dict[str, Any]:
        params = {"apiKey": credential, "domainName": subject, "outputFormat": "json"}
        data = await self._get_json(client, self.url, params=params)
        if "ErrorMessage" in data:
            error = data["ErrorMessage"]
            message = error.get("msg") if isinstance(error, dict) else error
            raise AdapterFailure(self.name, "vendor_error", str(message))
        record = data.get("WhoisRecord", data)
        if not isinstance(record, dict):
            raise AdapterFailure(self.name, "parse", "WhoisRecord is not an object")
        return record

    @staticmethod
    def _contact(raw: Any) -> Optional[DomainContact]:
        if not isinstance(raw, dict):
            return None
        return DomainContact(
            name=to_str(raw.get("name")),
            organization=to_str(raw.get("organization")),
            country=to_str(raw.get("country") or raw.get("countryCode")),
            email=to_str(raw.get("email")),
        )

    def normalize(self, raw: Dict[str, Any], subject: str) -> DomainLookupResult:
        registry = raw.get("registryData") if isinstance(raw.get("registryData"), dict) else {}

        def pick(key: str) -> Optional[str]:
            return to_str(raw.get(key) or registry.get(key))

        return DomainLookupResult(
            domain=(to_str(raw.get("domainName")) or subject).lower(),
            registrar=pick("registrarName"),
            registration_date=pick("createdDate"),
            expiration_date=pick("expiresDate"),
            updated_date=pick("updatedDate"),
            status=_as_list(raw.get("status") or registry.get("status")),
            name_servers=[ns.lower() for ns in _as_list(raw.get("nameServers") or registry.get("nameServers"))],
            registrant=self._contact(raw.get("registrant")),
            admin_contact=self._contact(raw.get("administrativeContact")),
            provider=self.name,
        )


class RdapAdapter(LookupAdapter):
    """
    Keyless fallback over RDAP. rdap.org redirects to the authoritative
    registry server for the TLD.
    """

    name = "rdap"
    subject_kind = "domain"
    credential_mode = CredentialMode.NONE
    default_timeout = 15.0
    base_url = "https://rdap.org/domain"

    async def fetch(
        self, client: httpx.AsyncClient, subject: str, credential: Optional[str]
    ) -> Dict[str, Any]:
        data = await self._get_json(
            client, f"{self.base_url}/{subject}", headers={"Accept": "application/rdap+json"}
        )
        if data.get("objectClassName") != "domain":
            raise AdapterFailure(self.name, "parse", "RDAP response is not a domain object")
        return data

    @staticmethod
    def _vcard_value(entity: Dict[str, Any], field_name: str) -> Optional[str]:
        # vcardArray = ["vcard", [[name, params, type, value], ...]]
        vcard = entity.get("vcardArray")
        if not isinstance(vcard, list) or len(vcard) < 2:
            return None
        for item in vcard[1]:
            if isinstance(item, list) and len(item) >= 4 and item[0] == field_name:
                value = item[3]
                if isinstance(value, list):
                    value = ", ".join(str(v) for v in value if v)
                return to_str(value)
        return None

    def _contact(self, entity: Optional[Dict[str, Any]]) -> Optional[DomainContact]:
        if not entity:
            return None
        return DomainContact(
            name=self._vcard_value(entity, "fn"),
            organization=self._vcard_value(entity, "org"),
            email=self._vcard_value(entity, "email"),
        )

    def normalize(self, raw: Dict[str, Any], subject: str) -> DomainLookupResult:
        events = {}
        for event in raw.get("events") or []:
            if isinstance(event, dict) and event.get("eventAction"):
                events[event["eventAction"]] = event.get("eventDate")

        by_role: Dict[str, Dict[str, Any]] = {}
        for entity in raw.get("entities") or []:
            if not isinstance(entity, dict):
                continue
            for role in entity.get("roles") or []:
                by_role.setdefault(role, entity)

        registrar = by_role.get("registrar")
        name_servers = [
            ns["ldhName"].lower()
            for ns in raw.get("nameservers") or []
            if isinstance(ns, dict) and ns.get("ldhName")
        ]

        return DomainLookupResult(
            domain=(to_str(raw.get("ldhName")) or subject).lower(),
            registrar=self._vcard_value(registrar, "fn") if registrar else None,
            registration_date=to_str(events.get("registration")),
            expiration_date=to_str(events.get("expiration")),
            updated_date=to_str(events.get("last changed")),
            status=[str(s) for s in raw.get("status") or []],
            name_servers=name_servers,
            registrant=self._contact(by_role.get("registrant")),
            admin_contact=self._contact(by_role.get("administrative")),
            provider=self.name,
        )
