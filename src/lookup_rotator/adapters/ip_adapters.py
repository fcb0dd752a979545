# src/lookup_rotator/adapters/ip_adapters.py

from typing import Any, Dict, Optional

import httpx

from ..error_handler import AdapterFailure
from ..models import GeoLookupResult, SecurityReport
from .base import CredentialMode, LookupAdapter, to_float, to_int, to_str


def _optional_bool(value: Any) -> Optional[bool]:
    return None if value is None else bool(value)


class IpInfoAdapter(LookupAdapter):
    """ipinfo.io: works keyless at a low volume, the token raises the quota."""

    name = "ipinfo"
    subject_kind = "ip"
    credential_mode = CredentialMode.OPTIONAL
    base_url = "https://ipinfo.io"

    async def fetch(
        self, client: httpx.AsyncClient, subject: str, credential: Optional[str]
    ) -> Dict[str, Any]:
        params = {"token": credential} if credential else None
        data = await self._get_json(client, f"{self.base_url}/{subject}", params=params)
        if data.get("bogon"):
            raise AdapterFailure(self.name, "bogon", f"{subject} is a reserved/private address")
        if "error" in data:
            error = data["error"]
            title = error.get("title") if isinstance(error, dict) else error
            raise AdapterFailure(self.name, "vendor_error", str(title))
        return data

    def normalize(self, raw: Dict[str, Any], subject: str) -> GeoLookupResult:
        latitude = longitude = None
        loc = raw.get("loc")
        if isinstance(loc, str) and "," in loc:
            lat, lng = loc.split(",", 1)
            latitude, longitude = to_float(lat), to_float(lng)

        # "org" looks like "AS15169 Google LLC"
        org = to_str(raw.get("org"))
        asn = isp = None
        if org:
            head, _, tail = org.partition(" ")
            if head.upper().startswith("AS") and tail:
                asn, isp = head, tail
            else:
                isp = org

        return GeoLookupResult(
            ip=to_str(raw.get("ip")) or subject,
            country=None,
            country_code=to_str(raw.get("country")),
            region=to_str(raw.get("region")),
            city=to_str(raw.get("city")),
            latitude=latitude,
            longitude=longitude,
            timezone=to_str(raw.get("timezone")),
            isp=isp,
            asn=asn,
            postal=to_str(raw.get("postal")),
            provider=self.name,
        )


class IpApiAdapter(LookupAdapter):
    name = "ipapi"
    subject_kind = "ip"
    credential_mode = CredentialMode.OPTIONAL
    base_url = "https://ipapi.co"

    async def fetch(
        self, client: httpx.AsyncClient, subject: str, credential: Optional[str]
    ) -> Dict[str, Any]:
        params = {"key": credential} if credential else None
        data = await self._get_json(client, f"{self.base_url}/{subject}/json/", params=params)
        # ipapi answers 200 with {"error": true, "reason": "..."} for quota and reserved ranges
        if data.get("error"):
            raise AdapterFailure(self.name, "vendor_error", str(data.get("reason") or "error"))
        return data

    def normalize(self, raw: Dict[str, Any], subject: str) -> GeoLookupResult:
        return GeoLookupResult(
            ip=to_str(raw.get("ip")) or subject,
            country=to_str(raw.get("country_name")),
            country_code=to_str(raw.get("country_code") or raw.get("country")),
            region=to_str(raw.get("region")),
            city=to_str(raw.get("city")),
            latitude=to_float(raw.get("latitude")),
            longitude=to_float(raw.get("longitude")),
            timezone=to_str(raw.get("timezone")),
            isp=to_str(raw.get("org")),
            asn=to_str(raw.get("asn")),
            postal=to_str(raw.get("postal")),
            currency=to_str(raw.get("currency")),
            languages=to_str(raw.get("languages")),
            provider=self.name,
        )


class IpGeolocationAdapter(LookupAdapter):
    name = "ipgeolocation"
    subject_kind = "ip"
    credential_mode = CredentialMode.REQUIRED
    url = "https://api.ipgeolocation.io/ipgeo"

    async def fetch(
        self, client: httpx.AsyncClient, subject: str, credential: Optional[str]
    ) -> Dict[str, Any]:
        data = await self._get_json(client, self.url, params={"apiKey": credential, "ip": subject})
        if "message" in data and "ip" not in data:
            raise AdapterFailure(self.name, "vendor_error", str(data["message"]))
        return data

    def normalize(self, raw: Dict[str, Any], subject: str) -> GeoLookupResult:
        time_zone = raw.get("time_zone")
        currency = raw.get("currency")
        return GeoLookupResult(
            ip=to_str(raw.get("ip")) or subject,
            country=to_str(raw.get("country_name")),
            country_code=to_str(raw.get("country_code2")),
            region=to_str(raw.get("state_prov")),
            city=to_str(raw.get("city")),
            latitude=to_float(raw.get("latitude")),
            longitude=to_float(raw.get("longitude")),
            timezone=to_str(time_zone.get("name")) if isinstance(time_zone, dict) else None,
            isp=to_str(raw.get("isp") or raw.get("organization")),
            postal=to_str(raw.get("zipcode")),
            currency=to_str(currency.get("code")) if isinstance(currency, dict) else None,
            languages=to_str(raw.get("languages")),
            provider=self.name,
        )


class AbuseIpDbAdapter(LookupAdapter):
    """
    Reputation data for an IP. Used as the enrichment step of ip-lookup, so
    normalize() returns a SecurityReport rather than a full result.
    """

    name = "abuseipdb"
    subject_kind = "ip"
    credential_mode = CredentialMode.REQUIRED
    url = "https://api.abuseipdb.com/api/v2/check"
    max_age_days = 90

    async def fetch(
        self, client: httpx.AsyncClient, subject: str, credential: Optional[str]
    ) -> Dict[str, Any]:
        headers = {"Key": credential or "", "Accept": "application/json"}
        params = {"ipAddress": subject, "maxAgeInDays": self.max_age_days}
        data = await self._get_json(client, self.url, params=params, headers=headers)
        payload = data.get("data")
        if not isinstance(payload, dict):
            errors = data.get("errors") or []
            detail = errors[0].get("detail") if errors and isinstance(errors[0], dict) else "missing data"
            raise AdapterFailure(self.name, "vendor_error", str(detail))
        return payload

    def normalize(self, raw: Dict[str, Any], subject: str) -> SecurityReport:
        return SecurityReport(
            is_whitelisted=_optional_bool(raw.get("isWhitelisted")),
            abuse_confidence=to_int(raw.get("abuseConfidenceScore")),
            country_match=_optional_bool(raw.get("countryMatch")),
            usage_type=to_str(raw.get("usageType")),
            total_reports=to_int(raw.get("totalReports")),
            num_distinct_users=to_int(raw.get("numDistinctUsers")),
            last_reported_at=to_str(raw.get("lastReportedAt")),
        )
