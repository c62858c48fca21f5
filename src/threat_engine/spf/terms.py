"""
Sender policy record parsing.

Turns ``v=spf1 ...`` text into an ordered list of :class:`PolicyTerm` and
expands the macro subset used in domain-specs.
"""

import ipaddress
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple, Union

from ..exceptions import PolicySyntaxError

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

MECHANISMS = {'all', 'include', 'a', 'mx', 'ptr', 'ip4', 'ip6', 'exists'}
# Mechanisms that must carry a domain-spec / network argument
REQUIRES_ARGUMENT = {'include', 'exists', 'ip4', 'ip6'}
UNIQUE_MODIFIERS = {'redirect', 'exp'}

_MODIFIER_RE = re.compile(r'^([a-zA-Z][a-zA-Z0-9._-]*)=(.*)$')
_MACRO_RE = re.compile(r'%\{([slodiphvcrt])(\d*)(r?)([.\-+,/_=]*)\}', re.IGNORECASE)


class TermKind(str, Enum):
    MECHANISM = "mechanism"
    MODIFIER = "modifier"


class Qualifier(str, Enum):
    """Outcome marker of a mechanism; the value is the record symbol."""
    PASS = "+"
    FAIL = "-"
    SOFTFAIL = "~"
    NEUTRAL = "?"


@dataclass(frozen=True)
class PolicyTerm:
    """One mechanism or modifier, in record order."""
    kind: TermKind
    name: str
    qualifier: Optional[Qualifier] = None
    argument: Optional[str] = None

    @property
    def is_modifier(self) -> bool:
        return self.kind == TermKind.MODIFIER

    def __str__(self) -> str:
        if self.is_modifier:
            return f"{self.name}={self.argument or ''}"
        text = f"{self.qualifier.value}{self.name}"
        if self.argument:
            text += self.argument if self.argument.startswith('/') else f":{self.argument}"
        return text


def is_policy_record(text: str) -> bool:
    """True for TXT strings that announce a sender policy."""
    lowered = text.strip().lower()
    return lowered == 'v=spf1' or lowered.startswith('v=spf1 ')


def parse_record(record: str) -> List[PolicyTerm]:
    """
    Parse a policy record into terms.

    Raises:
        PolicySyntaxError: unknown mechanism, missing argument, duplicate
            ``redirect``/``exp`` or a record without the version tag
    """
    parts = record.split()
    if not parts or parts[0].lower() != 'v=spf1':
        raise PolicySyntaxError(f"Not a policy record: {record[:60]!r}")

    terms: List[PolicyTerm] = []
    seen_modifiers = set()
    for part in parts[1:]:
        modifier = _MODIFIER_RE.match(part)
        if modifier:
            name = modifier.group(1).lower()
            if name in UNIQUE_MODIFIERS and name in seen_modifiers:
                raise PolicySyntaxError(f"Duplicate {name}= modifier")
            seen_modifiers.add(name)
            terms.append(PolicyTerm(kind=TermKind.MODIFIER, name=name, argument=modifier.group(2)))
            continue
        terms.append(_parse_mechanism(part))
    return terms


def _parse_mechanism(part: str) -> PolicyTerm:
    qualifier = Qualifier.PASS
    body = part
    if part[0] in '+-~?':
        qualifier = Qualifier(part[0])
        body = part[1:]

    colon = body.find(':')
    slash = body.find('/')
    if colon != -1 and (slash == -1 or colon < slash):
        name, argument = body[:colon], body[colon + 1:]
        if not argument:
            raise PolicySyntaxError(f"Empty argument in {part!r}")
    elif slash != -1:
        name, argument = body[:slash], body[slash:]
    else:
        name, argument = body, None

    name = name.lower()
    if name not in MECHANISMS:
        raise PolicySyntaxError(f"Unknown mechanism {name!r}")
    if name in REQUIRES_ARGUMENT and not argument:
        raise PolicySyntaxError(f"Mechanism {name!r} requires an argument")
    if name == 'all' and argument:
        raise PolicySyntaxError("Mechanism 'all' takes no argument")
    return PolicyTerm(kind=TermKind.MECHANISM, name=name, qualifier=qualifier, argument=argument)


def split_cidr(argument: Optional[str]) -> Tuple[Optional[str], int, int]:
    """
    Split ``domain/v4//v6`` into the domain-spec and both prefix lengths.

    Missing parts default to ``None``, 32 and 128.
    """
    if not argument:
        return None, 32, 128

    domain_spec = argument
    v4_prefix, v6_prefix = 32, 128
    if '//' in domain_spec:
        domain_spec, v6_text = domain_spec.split('//', 1)
        v6_prefix = _prefix(v6_text, 128)
    if '/' in domain_spec:
        domain_spec, v4_text = domain_spec.split('/', 1)
        v4_prefix = _prefix(v4_text, 32)
    return domain_spec or None, v4_prefix, v6_prefix


def _prefix(text: str, maximum: int) -> int:
    if not text.isdigit() or int(text) > maximum:
        raise PolicySyntaxError(f"Invalid prefix length {text!r}")
    return int(text)


def parse_network(argument: str, version: int):
    """Network of an ``ip4:``/``ip6:`` argument, checked against the family."""
    try:
        network = ipaddress.ip_network(argument, strict=False)
    except ValueError as e:
        raise PolicySyntaxError(f"Invalid network {argument!r}: {e}") from e
    if network.version != version:
        raise PolicySyntaxError(f"{argument!r} is not an IPv{version} network")
    return network


def expand_macros(spec: str, ip: IPAddress, sender: str, domain: str, helo_domain: Optional[str] = None) -> str:
    """
    Expand ``%{x}`` macros in a domain-spec.

    Supports the letters s, l, o, d, i, p, h, v with digit and ``r``
    transformers and custom delimiters, plus ``%%``, ``%_`` and ``%-``.
    """
    if '%' not in spec:
        return spec

    local, _, sender_domain = (sender or '').rpartition('@')
    if not sender_domain:
        sender_domain = helo_domain or domain
    local = local or 'postmaster'

    if ip.version == 4:
        ip_text = str(ip)
    else:
        ip_text = '.'.join(ip.exploded.replace(':', ''))

    values = {
        's': f"{local}@{sender_domain}",
        'l': local,
        'o': sender_domain,
        'd': domain,
        'i': ip_text,
        'p': 'unknown',
        'h': helo_domain or domain,
        'v': 'in-addr' if ip.version == 4 else 'ip6',
    }

    output = []
    pos = 0
    while pos < len(spec):
        char = spec[pos]
        if char != '%':
            output.append(char)
            pos += 1
            continue
        following = spec[pos + 1:pos + 2]
        if following == '%':
            output.append('%')
            pos += 2
        elif following == '_':
            output.append(' ')
            pos += 2
        elif following == '-':
            output.append('%20')
            pos += 2
        elif following == '{':
            match = _MACRO_RE.match(spec, pos)
            if not match:
                raise PolicySyntaxError(f"Malformed macro in {spec!r}")
            letter, digits, reverse, delimiters = match.groups()
            if letter.lower() not in values:
                raise PolicySyntaxError(f"Macro %{{{letter}}} not allowed here")
            output.append(_transform(values[letter.lower()], digits, bool(reverse), delimiters))
            pos = match.end()
        else:
            raise PolicySyntaxError(f"Stray '%' in {spec!r}")
    return ''.join(output)


def _transform(value: str, digits: str, reverse: bool, delimiters: str) -> str:
    parts = re.split('[' + re.escape(delimiters or '.') + ']', value)
    if reverse:
        parts.reverse()
    if digits:
        keep = int(digits)
        if keep == 0:
            raise PolicySyntaxError("Macro transformer of zero labels")
        parts = parts[-keep:]
    return '.'.join(parts)
