"""
Sender authorization (SPF) verification.
"""

from .resolver import DNSResolver, DnspythonResolver
from .terms import PolicyTerm, Qualifier, TermKind, parse_record
from .verifier import (
    AuthorizationContext,
    AuthorizationResult,
    SPFResult,
    SPFVerifier,
    VerificationState,
)

__all__ = [
    'DNSResolver',
    'DnspythonResolver',
    'PolicyTerm',
    'Qualifier',
    'TermKind',
    'parse_record',
    'AuthorizationContext',
    'AuthorizationResult',
    'SPFResult',
    'SPFVerifier',
    'VerificationState',
]
