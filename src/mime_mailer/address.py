# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""RFC 5322 address formatting and parsing.

Parsing relies on the standard library header registry so that display
names, quoted strings and encoded-words are handled by the same grammar
used when reading mail.
"""

from __future__ import annotations

import re
from email.errors import HeaderMissingRequiredValue, InvalidHeaderDefect, NonPrintableDefect
from email.headerregistry import HeaderRegistry

from .encoding import B_ENCODING, WordEncoder
from .errors import AddressError

# RFC 5322 "specials" that force a display name into an encoded-word.
SPECIALS = frozenset('()<>[]:;@\\,."')

_FATAL_DEFECTS = (InvalidHeaderDefect, HeaderMissingRequiredValue, NonPrintableDefect)
_registry = HeaderRegistry()

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9-]+(\.[a-zA-Z0-9-]+)*\.[a-zA-Z]{2,6}$")


def has_specials(text: str) -> bool:
    """Return True when ``text`` contains any RFC 5322 special character."""
    return any(ch in SPECIALS for ch in text)


def format_address(address: str, name: str, charset: str, encoder: WordEncoder) -> str:
    """Format ``name <address>`` as a valid RFC 5322 mailbox.

    Names that need no encoding become quoted strings; names that do are
    encoded with ``encoder``, or forced to base64 words when they also hold
    specials.
    """
    if not name:
        return address

    encoded = encoder.encode(charset, name)
    if encoded == name:
        escaped = name.replace("\\", "\\\\").replace('"', '\\"')
        display = f'"{escaped}"'
    elif has_specials(name):
        display = B_ENCODING.encode(charset, name)
    else:
        display = encoded
    return f"{display} <{address}>"


def parse_address(value: str) -> str:
    """Parse a single mailbox and return its bare ``local@domain`` address.

    Raises:
        AddressError: If ``value`` is not exactly one well-formed mailbox.
    """
    try:
        header = _registry("To", value)
    except Exception as exc:
        raise AddressError(value, str(exc)) from exc

    for defect in header.defects:
        if isinstance(defect, _FATAL_DEFECTS):
            raise AddressError(value, str(defect))

    addresses = header.addresses
    if len(addresses) != 1:
        raise AddressError(value, "expected exactly one address")
    mailbox = addresses[0]
    if not mailbox.username or not mailbox.domain:
        raise AddressError(value, "missing local part or domain")
    return mailbox.addr_spec


def add_address(addresses: list[str], address: str) -> list[str]:
    """Append ``address`` unless already present; first occurrence wins."""
    if address not in addresses:
        addresses.append(address)
    return addresses


def validate_format(email: str) -> bool:
    """Return True when ``email`` matches the plain ``user@domain.tld`` pattern."""
    return EMAIL_PATTERN.match(email) is not None


__all__ = [
    "EMAIL_PATTERN",
    "SPECIALS",
    "add_address",
    "format_address",
    "has_specials",
    "parse_address",
    "validate_format",
]
