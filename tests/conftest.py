"""
Shared fixtures for threat engine tests.
"""

from typing import Dict, List, Optional

import pytest

from threat_engine.exceptions import TransientLookupError
from threat_engine.spf import DNSResolver


class FakeResolver(DNSResolver):
    """In-memory resolver; names are matched case-insensitively."""

    def __init__(
        self,
        txt: Optional[Dict[str, List[str]]] = None,
        a: Optional[Dict[str, List[str]]] = None,
        aaaa: Optional[Dict[str, List[str]]] = None,
        mx: Optional[Dict[str, List[str]]] = None,
        ptr: Optional[Dict[str, List[str]]] = None,
        failing: Optional[List[str]] = None,
    ):
        self.txt_records = _lower(txt)
        self.a_records = _lower(a)
        self.aaaa_records = _lower(aaaa)
        self.mx_records = _lower(mx)
        self.ptr_records = _lower(ptr)
        self.failing = {name.lower() for name in failing or []}
        self.queries: List[str] = []

    def _check(self, name: str, rdtype: str) -> str:
        key = name.lower().rstrip('.')
        self.queries.append(f"{rdtype} {key}")
        if key in self.failing:
            raise TransientLookupError(f"{rdtype} lookup for {key} timed out")
        return key

    async def txt(self, name: str) -> List[str]:
        return list(self.txt_records.get(self._check(name, 'TXT'), []))

    async def addresses(self, name: str, version: int = 4) -> List[str]:
        if version == 6:
            return list(self.aaaa_records.get(self._check(name, 'AAAA'), []))
        return list(self.a_records.get(self._check(name, 'A'), []))

    async def mx(self, name: str) -> List[str]:
        return list(self.mx_records.get(self._check(name, 'MX'), []))

    async def ptr(self, address: str) -> List[str]:
        return list(self.ptr_records.get(self._check(address, 'PTR'), []))


def _lower(records: Optional[Dict[str, List[str]]]) -> Dict[str, List[str]]:
    return {name.lower(): values for name, values in (records or {}).items()}


@pytest.fixture
def fake_resolver():
    """Factory for FakeResolver instances."""
    return FakeResolver


RAW_PHISHING = (
    "From: PayPal Security <security@paypa1-verify.tk>\r\n"
    "To: victim@example.com\r\n"
    "Subject: URGENT: Your account has been suspended\r\n"
    "Message-ID: <phish-1@paypa1-verify.tk>\r\n"
    "Reply-To: collect@evil.example\r\n"
    "Content-Type: text/plain; charset=utf-8\r\n"
    "\r\n"
    "Dear customer,\r\n"
    "Your account has been suspended. Verify your account immediately at "
    "http://192.168.10.5/login and confirm your password and credit card number.\r\n"
)

RAW_CLEAN = (
    "From: Alice <alice@example.com>\r\n"
    "To: bob@example.org\r\n"
    "Subject: Lunch tomorrow\r\n"
    "Message-ID: <lunch-1@example.com>\r\n"
    "Return-Path: <alice@example.com>\r\n"
    "Authentication-Results: mx.example.org; spf=pass smtp.mailfrom=example.com; "
    "dkim=pass header.d=example.com; dmarc=pass header.from=example.com\r\n"
    "Received: from mail.example.com (mail.example.com [198.51.100.7]) by mx.example.org "
    "with ESMTPS (version=TLS1.3 cipher=TLS_AES_256_GCM_SHA384); Mon, 1 Jan 2024 10:00:00 +0000\r\n"
    "Content-Type: text/plain; charset=utf-8\r\n"
    "\r\n"
    "Hi Bob, are we still on for lunch tomorrow at noon?\r\n"
)


@pytest.fixture
def raw_phishing():
    return RAW_PHISHING


@pytest.fixture
def raw_clean():
    return RAW_CLEAN
