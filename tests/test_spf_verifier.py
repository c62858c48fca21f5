"""
Tests for sender authorization verification.
"""

import asyncio

import pytest

from threat_engine.spf import SPFResult, SPFVerifier


def chain(depth):
    """Policies where each domain includes the next one."""
    records = {"example.com": ["v=spf1 include:d1.example.com -all"]}
    for i in range(1, depth):
        records[f"d{i}.example.com"] = [f"v=spf1 include:d{i + 1}.example.com -all"]
    records[f"d{depth}.example.com"] = ["v=spf1 ip4:1.2.3.4 -all"]
    return records


class TestBasicResults:

    @pytest.mark.asyncio
    async def test_ip4_match_passes(self, fake_resolver):
        resolver = fake_resolver(txt={"example.com": ["v=spf1 ip4:1.2.3.4 -all"]})
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.PASS
        assert result.mechanism == "+ip4:1.2.3.4"
        assert result.lookups == 1

    @pytest.mark.asyncio
    async def test_fall_through_to_all(self, fake_resolver):
        resolver = fake_resolver(txt={"example.com": ["v=spf1 ip4:1.2.3.4 -all"]})
        result = await SPFVerifier(resolver).verify("5.6.7.8", "example.com", "a@example.com")

        assert result.result == SPFResult.FAIL
        assert result.mechanism == "-all"

    @pytest.mark.asyncio
    async def test_softfail_and_neutral_qualifiers(self, fake_resolver):
        resolver = fake_resolver(txt={
            "soft.example": ["v=spf1 ~all"],
            "neutral.example": ["v=spf1 ?all"],
        })
        verifier = SPFVerifier(resolver)

        soft = await verifier.verify("1.2.3.4", "soft.example", "a@soft.example")
        neutral = await verifier.verify("1.2.3.4", "neutral.example", "a@neutral.example")

        assert soft.result == SPFResult.SOFTFAIL
        assert neutral.result == SPFResult.NEUTRAL

    @pytest.mark.asyncio
    async def test_no_mechanism_matched_is_neutral(self, fake_resolver):
        resolver = fake_resolver(txt={"example.com": ["v=spf1 ip4:10.0.0.1"]})
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.NEUTRAL
        assert result.mechanism is None

    @pytest.mark.asyncio
    async def test_no_policy_is_none_with_one_lookup(self, fake_resolver):
        resolver = fake_resolver(txt={"example.com": ["google-site-verification=abc"]})
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.NONE
        assert result.lookups == 1
        assert result.void_lookups == 0

    @pytest.mark.asyncio
    async def test_multiple_policies_treated_as_none(self, fake_resolver):
        resolver = fake_resolver(txt={"example.com": ["v=spf1 -all", "v=spf1 +all"]})
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.NONE
        assert any("Multiple SPF records" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_invalid_client_address_is_permerror(self, fake_resolver):
        result = await SPFVerifier(fake_resolver()).verify("not-an-ip", "example.com", "a@example.com")

        assert result.result == SPFResult.PERMERROR
        assert result.lookups == 0

    @pytest.mark.asyncio
    async def test_empty_domain_is_none(self, fake_resolver):
        result = await SPFVerifier(fake_resolver()).verify("1.2.3.4", "", "")
        assert result.result == SPFResult.NONE

    @pytest.mark.asyncio
    async def test_ip6_network(self, fake_resolver):
        resolver = fake_resolver(txt={"example.com": ["v=spf1 ip6:2001:db8::/32 -all"]})
        verifier = SPFVerifier(resolver)

        inside = await verifier.verify("2001:db8::1", "example.com", "a@example.com")
        outside = await verifier.verify("2001:db9::1", "example.com", "a@example.com")
        v4 = await verifier.verify("1.2.3.4", "example.com", "a@example.com")

        assert inside.result == SPFResult.PASS
        assert outside.result == SPFResult.FAIL
        assert v4.result == SPFResult.FAIL


class TestDnsMechanisms:

    @pytest.mark.asyncio
    async def test_a_mechanism(self, fake_resolver):
        resolver = fake_resolver(
            txt={"example.com": ["v=spf1 a -all"]},
            a={"example.com": ["1.2.3.4"]},
        )
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.PASS
        assert result.lookups == 2

    @pytest.mark.asyncio
    async def test_a_mechanism_with_prefix(self, fake_resolver):
        resolver = fake_resolver(
            txt={"example.com": ["v=spf1 a:web.example.com/24 -all"]},
            a={"web.example.com": ["1.2.3.4"]},
        )
        result = await SPFVerifier(resolver).verify("1.2.3.99", "example.com", "a@example.com")

        assert result.result == SPFResult.PASS

    @pytest.mark.asyncio
    async def test_mx_mechanism(self, fake_resolver):
        resolver = fake_resolver(
            txt={"example.com": ["v=spf1 mx -all"]},
            mx={"example.com": ["mail.example.com"]},
            a={"mail.example.com": ["192.0.2.10"]},
        )
        result = await SPFVerifier(resolver).verify("192.0.2.10", "example.com", "a@example.com")

        assert result.result == SPFResult.PASS
        assert result.mechanism == "+mx"

    @pytest.mark.asyncio
    async def test_exists_with_reversed_ip_macro(self, fake_resolver):
        resolver = fake_resolver(
            txt={"example.com": ["v=spf1 exists:%{ir}._allow.example.com -all"]},
            a={"4.3.2.1._allow.example.com": ["127.0.0.2"]},
        )
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.PASS

    @pytest.mark.asyncio
    async def test_ptr_mechanism_warns(self, fake_resolver):
        resolver = fake_resolver(
            txt={"example.com": ["v=spf1 ptr -all"]},
            ptr={"1.2.3.4": ["host.example.com"]},
            a={"host.example.com": ["1.2.3.4"]},
        )
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.PASS
        assert any("PTR" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_void_lookup_limit(self, fake_resolver):
        resolver = fake_resolver(txt={
            "example.com": ["v=spf1 a:v1.example.com a:v2.example.com a:v3.example.com -all"],
        })
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.PERMERROR
        assert result.void_lookups == 3


class TestIncludeAndRedirect:

    @pytest.mark.asyncio
    async def test_include_pass(self, fake_resolver):
        resolver = fake_resolver(txt={
            "example.com": ["v=spf1 include:_spf.provider.net -all"],
            "_spf.provider.net": ["v=spf1 ip4:10.0.0.0/8 -all"],
        })
        verifier = SPFVerifier(resolver)

        inside = await verifier.verify("10.1.2.3", "example.com", "a@example.com")
        outside = await verifier.verify("1.2.3.4", "example.com", "a@example.com")

        assert inside.result == SPFResult.PASS
        assert inside.mechanism == "+include:_spf.provider.net"
        assert inside.lookups == 2
        assert outside.result == SPFResult.FAIL

    @pytest.mark.asyncio
    async def test_include_without_policy_does_not_match(self, fake_resolver):
        resolver = fake_resolver(txt={"example.com": ["v=spf1 include:missing.example ~all"]})
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.SOFTFAIL
        assert any("missing.example" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_nested_lookup_budget_is_shared(self, fake_resolver):
        resolver = fake_resolver(txt=chain(12))
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.PERMERROR
        assert result.lookups <= 10
        assert "limit" in result.explanation

    @pytest.mark.asyncio
    async def test_nested_chain_within_budget_passes(self, fake_resolver):
        resolver = fake_resolver(txt=chain(5))
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.PASS
        assert result.lookups == 6

    @pytest.mark.asyncio
    async def test_include_loop_is_permerror(self, fake_resolver):
        resolver = fake_resolver(txt={
            "a.example": ["v=spf1 include:b.example -all"],
            "b.example": ["v=spf1 include:a.example -all"],
        })
        result = await SPFVerifier(resolver).verify("1.2.3.4", "a.example", "x@a.example")

        assert result.result == SPFResult.PERMERROR

    @pytest.mark.asyncio
    async def test_redirect(self, fake_resolver):
        resolver = fake_resolver(txt={
            "example.com": ["v=spf1 redirect=policy.example.net"],
            "policy.example.net": ["v=spf1 ip4:1.2.3.4 -all"],
        })
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.PASS

    @pytest.mark.asyncio
    async def test_redirect_ignored_when_mechanism_matches(self, fake_resolver):
        resolver = fake_resolver(txt={
            "example.com": ["v=spf1 redirect=policy.example.net ip4:1.2.3.4"],
        })
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.PASS
        assert resolver.queries == ["TXT example.com"]

    @pytest.mark.asyncio
    async def test_redirect_without_policy_is_permerror(self, fake_resolver):
        resolver = fake_resolver(txt={"example.com": ["v=spf1 redirect=nowhere.example"]})
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.PERMERROR


class TestErrors:

    @pytest.mark.asyncio
    async def test_transient_failure_is_temperror(self, fake_resolver):
        resolver = fake_resolver(failing=["example.com"])
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.TEMPERROR

    @pytest.mark.asyncio
    async def test_nested_temperror_propagates(self, fake_resolver):
        resolver = fake_resolver(
            txt={"example.com": ["v=spf1 include:flaky.example -all"]},
            failing=["flaky.example"],
        )
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.TEMPERROR

    @pytest.mark.asyncio
    async def test_unknown_mechanism_is_permerror(self, fake_resolver):
        resolver = fake_resolver(txt={"example.com": ["v=spf1 foo:bar -all"]})
        result = await SPFVerifier(resolver).verify("1.2.3.4", "example.com", "a@example.com")

        assert result.result == SPFResult.PERMERROR

    @pytest.mark.asyncio
    async def test_concurrent_verifications_do_not_share_state(self, fake_resolver):
        records = chain(12)
        records["ok.example"] = ["v=spf1 ip4:1.2.3.4 -all"]
        verifier = SPFVerifier(fake_resolver(txt=records))

        exhausted, ok = await asyncio.gather(
            verifier.verify("1.2.3.4", "example.com", "a@example.com"),
            verifier.verify("1.2.3.4", "ok.example", "a@ok.example"),
        )

        assert exhausted.result == SPFResult.PERMERROR
        assert ok.result == SPFResult.PASS
        assert ok.lookups == 1
