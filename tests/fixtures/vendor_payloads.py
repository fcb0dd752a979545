"""Canned vendor responses and a MockTransport router for adapter tests."""

from typing import Any, Callable, Dict, List, Union

import httpx

IPINFO_PAYLOAD = {
    "ip": "8.8.8.8",
    "hostname": "dns.google",
    "city": "Mountain View",
    "region": "California",
    "country": "US",
    "loc": "37.4056,-122.0775",
    "org": "AS15169 Google LLC",
    "postal": "94043",
    "timezone": "America/Los_Angeles",
}

IPAPI_PAYLOAD = {
    "ip": "8.8.8.8",
    "city": "Mountain View",
    "region": "California",
    "country": "US",
    "country_code": "US",
    "country_name": "United States",
    "postal": "94043",
    "latitude": 37.42301,
    "longitude": -122.083352,
    "timezone": "America/Los_Angeles",
    "currency": "USD",
    "languages": "en-US,es-US,haw,fr",
    "asn": "AS15169",
    "org": "GOOGLE",
}

IPGEOLOCATION_PAYLOAD = {
    "ip": "8.8.8.8",
    "country_code2": "US",
    "country_name": "United States",
    "state_prov": "California",
    "city": "Mountain View",
    "zipcode": "94043-1351",
    "latitude": "37.42240",
    "longitude": "-122.08421",
    "languages": "en-US,es-US,haw,fr",
    "isp": "Google LLC",
    "currency": {"code": "USD", "name": "US Dollar", "symbol": "$"},
    "time_zone": {"name": "America/Los_Angeles", "offset": -8},
}

ABUSEIPDB_PAYLOAD = {
    "data": {
        "ipAddress": "8.8.8.8",
        "isPublic": True,
        "isWhitelisted": False,
        "abuseConfidenceScore": 80,
        "countryMatch": True,
        "countryCode": "US",
        "usageType": "Data Center/Web Hosting/Transit",
        "isp": "Google LLC",
        "totalReports": 42,
        "numDistinctUsers": 7,
        "lastReportedAt": "2024-05-01T10:00:00+00:00",
    }
}

WHOISAPI_PAYLOAD = {
    "WhoisRecord": {
        "domainName": "google.com",
        "registrarName": "MarkMonitor, Inc.",
        "createdDate": "1997-09-15T04:00:00Z",
        "expiresDate": "2028-09-14T04:00:00Z",
        "updatedDate": "2019-09-09T15:39:04Z",
        "status": "clientDeleteProhibited clientTransferProhibited",
        "nameServers": {"hostNames": ["NS1.GOOGLE.COM", "NS2.GOOGLE.COM"]},
        "registrant": {
            "organization": "Google LLC",
            "country": "UNITED STATES",
            "countryCode": "US",
        },
        "administrativeContact": {
            "organization": "Google LLC",
            "email": "dns-admin@google.com",
        },
    }
}

RDAP_PAYLOAD = {
    "objectClassName": "domain",
    "ldhName": "GOOGLE.COM",
    "status": ["client delete prohibited", "client transfer prohibited"],
    "events": [
        {"eventAction": "registration", "eventDate": "1997-09-15T04:00:00Z"},
        {"eventAction": "expiration", "eventDate": "2028-09-14T04:00:00Z"},
        {"eventAction": "last changed", "eventDate": "2019-09-09T15:39:04Z"},
    ],
    "entities": [
        {
            "objectClassName": "entity",
            "roles": ["registrar"],
            "vcardArray": [
                "vcard",
                [
                    ["version", {}, "text", "4.0"],
                    ["fn", {}, "text", "MarkMonitor Inc."],
                ],
            ],
        }
    ],
    "nameservers": [
        {"objectClassName": "nameserver", "ldhName": "NS1.GOOGLE.COM"},
        {"objectClassName": "nameserver", "ldhName": "NS2.GOOGLE.COM"},
    ],
}

Responder = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class VendorRouter:
    """
    httpx.MockTransport handler that answers per host.

    Unregistered hosts fail with a connection error. Every request is
    recorded in `calls` so tests can assert which vendors were contacted.
    """

    def __init__(self):
        self.responders: Dict[str, Responder] = {}
        self.calls: List[httpx.Request] = []

    def respond(self, host: str, responder: Responder) -> None:
        self.responders[host] = responder

    def respond_json(self, host: str, payload: Any, status_code: int = 200) -> None:
        self.responders[host] = httpx.Response(status_code, json=payload)

    def hosts_called(self) -> List[str]:
        return [request.url.host for request in self.calls]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        responder = self.responders.get(request.url.host)
        if responder is None:
            raise httpx.ConnectError("connection refused", request=request)
        if isinstance(responder, Exception):
            raise responder
        if isinstance(responder, httpx.Response):
            return httpx.Response(
                responder.status_code,
                headers=responder.headers,
                content=responder.content,
                request=request,
            )
        return responder(request)
