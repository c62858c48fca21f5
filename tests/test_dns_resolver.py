"""
Tests for the dnspython-backed resolver.
"""

from types import SimpleNamespace

import dns.exception
import dns.resolver
import pytest

from threat_engine.exceptions import PolicySyntaxError, TransientLookupError
from threat_engine.spf import DnspythonResolver


class StubResolver:
    """Stands in for ``dns.asyncresolver.Resolver``."""

    def __init__(self, answers=None, error=None):
        self.answers = answers or []
        self.error = error
        self.calls = []

    async def resolve(self, name, rdtype, lifetime=None):
        self.calls.append((str(name), rdtype, lifetime))
        if self.error is not None:
            raise self.error
        return self.answers


@pytest.mark.asyncio
async def test_txt_joins_strings():
    stub = StubResolver([SimpleNamespace(strings=[b"v=spf1 ", b"-all"])])
    resolver = DnspythonResolver(timeout=2.0, resolver=stub)

    assert await resolver.txt("example.com") == ["v=spf1 -all"]
    assert stub.calls == [("example.com", "TXT", 2.0)]


@pytest.mark.asyncio
async def test_mx_sorted_by_preference():
    stub = StubResolver([
        SimpleNamespace(preference=20, exchange="Backup.Example.com."),
        SimpleNamespace(preference=10, exchange="mail.example.com."),
    ])

    assert await DnspythonResolver(resolver=stub).mx("example.com") == [
        "mail.example.com",
        "backup.example.com",
    ]


@pytest.mark.asyncio
async def test_aaaa_query_for_version_6():
    stub = StubResolver([SimpleNamespace(address="2001:db8::1")])

    assert await DnspythonResolver(resolver=stub).addresses("example.com", 6) == ["2001:db8::1"]
    assert stub.calls[0][1] == "AAAA"


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [dns.resolver.NXDOMAIN(), dns.resolver.NoAnswer()])
async def test_void_answers_are_empty(error):
    resolver = DnspythonResolver(resolver=StubResolver(error=error))

    assert await resolver.addresses("missing.example.com") == []


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [dns.exception.Timeout(), dns.resolver.NoNameservers()])
async def test_failures_are_transient(error):
    resolver = DnspythonResolver(resolver=StubResolver(error=error))

    with pytest.raises(TransientLookupError):
        await resolver.txt("example.com")


@pytest.mark.asyncio
async def test_ptr_rejects_invalid_address():
    resolver = DnspythonResolver(resolver=StubResolver())

    with pytest.raises(PolicySyntaxError):
        await resolver.ptr("not-an-address")
