"""Subject validation and normalization run before any adapter is tried."""

import ipaddress
import re

from .error_handler import InvalidInputError

# Labels of 1-63 chars, no leading/trailing hyphen, alphabetic or punycode TLD
DOMAIN_REGEX = re.compile(
    r"^(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+(?:xn--[a-zA-Z0-9]+|[a-zA-Z]{2,})$"
)
MAX_DOMAIN_LENGTH = 253

_SCHEME_REGEX = re.compile(r"^https?://", re.IGNORECASE)


def is_valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def is_valid_domain(value: str) -> bool:
    """Format check only: "google.com" passes, "http://google.com" and "google" do not."""
    return len(value) <= MAX_DOMAIN_LENGTH and bool(DOMAIN_REGEX.match(value))


def normalize_ip(subject: str) -> str:
    """
    Canonical lower-case form of an IPv4/IPv6 address.

    Raises:
        InvalidInputError: not an IP address
    """
    candidate = (subject or "").strip()
    try:
        return str(ipaddress.ip_address(candidate)).lower()
    except ValueError:
        raise InvalidInputError(subject, f"Invalid IP address format: '{subject}'")


def normalize_domain(subject: str) -> str:
    """
    Lower-case the domain and strip a leading http(s):// and any path before
    the format check, the way users paste links into chat.

    Raises:
        InvalidInputError: not a valid domain name after cleanup
    """
    candidate = (subject or "").strip().lower()
    candidate = _SCHEME_REGEX.sub("", candidate)
    candidate = candidate.split("/", 1)[0]
    if not is_valid_domain(candidate):
        raise InvalidInputError(subject, f"Invalid domain name format: '{subject}'")
    return candidate


NORMALIZERS = {
    "ip": normalize_ip,
    "domain": normalize_domain,
}
