"""
Tests for policy record parsing and macro expansion.
"""

import ipaddress

import pytest

from threat_engine.exceptions import PolicySyntaxError
from threat_engine.spf import Qualifier, TermKind, parse_record
from threat_engine.spf.terms import expand_macros, is_policy_record, split_cidr


class TestParseRecord:

    def test_terms_in_order(self):
        terms = parse_record("v=spf1 ip4:1.2.3.4 ~all redirect=other.example")

        assert [t.name for t in terms] == ["ip4", "all", "redirect"]
        assert terms[0].qualifier == Qualifier.PASS
        assert terms[0].argument == "1.2.3.4"
        assert terms[1].qualifier == Qualifier.SOFTFAIL
        assert terms[2].kind == TermKind.MODIFIER
        assert terms[2].argument == "other.example"

    def test_term_string_form(self):
        terms = parse_record("v=spf1 a/24 -include:_spf.example.com")

        assert str(terms[0]) == "+a/24"
        assert str(terms[1]) == "-include:_spf.example.com"

    @pytest.mark.parametrize("record", [
        "v=spf2 -all",
        "v=spf1 include",
        "v=spf1 bogus -all",
        "v=spf1 all:example.com",
        "v=spf1 redirect=a.example redirect=b.example",
    ])
    def test_invalid_records(self, record):
        with pytest.raises(PolicySyntaxError):
            parse_record(record)

    def test_is_policy_record(self):
        assert is_policy_record("v=spf1 -all")
        assert is_policy_record("V=SPF1")
        assert not is_policy_record("v=spf10 -all")
        assert not is_policy_record("v=DKIM1; k=rsa")


class TestCidr:

    def test_split_cidr(self):
        assert split_cidr(None) == (None, 32, 128)
        assert split_cidr("example.com/24//64") == ("example.com", 24, 64)
        assert split_cidr("/24") == (None, 24, 128)
        assert split_cidr("//64") == (None, 32, 64)

    def test_invalid_prefix(self):
        with pytest.raises(PolicySyntaxError):
            split_cidr("example.com/33")


class TestMacros:
    ip = ipaddress.ip_address("1.2.3.4")

    def test_sender_parts(self):
        assert expand_macros("%{l}.%{o}", self.ip, "user@sender.example", "example.com") == "user.sender.example"
        assert expand_macros("%{d}", self.ip, "user@sender.example", "example.com") == "example.com"

    def test_reverse_and_truncate(self):
        assert expand_macros("%{ir}", self.ip, "", "example.com") == "4.3.2.1"
        assert expand_macros("%{d2}", self.ip, "", "mail.example.com") == "example.com"

    def test_ipv6_address_is_dotted_nibbles(self):
        ip = ipaddress.ip_address("2001:db8::1")
        expanded = expand_macros("%{i}", ip, "", "example.com")

        assert len(expanded.split('.')) == 32
        assert expanded.startswith("2.0.0.1.0.d.b.8")

    def test_escapes(self):
        assert expand_macros("a%%b%_c%-d", self.ip, "", "example.com") == "a%b c%20d"

    def test_stray_percent(self):
        with pytest.raises(PolicySyntaxError):
            expand_macros("%x", self.ip, "", "example.com")
