"""
Turns an inbound message into the :class:`MessageContext` every stage reads.
"""

import logging
import re
from email import message_from_bytes, message_from_string, policy
from email.errors import HeaderParseError
from email.header import decode_header, make_header
from email.message import Message
from typing import Any, Dict, List, Optional, Tuple, Union

from bs4 import BeautifulSoup

from .exceptions import MessageParseError
from .models import InboundMessage, MessageContext

logger = logging.getLogger(__name__)

_LINK_RE = re.compile(r'https?://[^\s<>"\']+', re.IGNORECASE)
_FOLDING_RE = re.compile(r'\r?\n[ \t]+')
_TRAILING_PUNCTUATION = '.,;:!?)]}'


def parse_context(message: Union[InboundMessage, Dict[str, Any]]) -> MessageContext:
    """
    Build the message context.

    Explicit fields of ``message`` win over the raw headers; the raw message
    fills in whatever was left empty.

    Raises:
        MessageParseError: ``raw_message`` is neither text nor bytes, or is
            non-empty but contains no header at all
    """
    if isinstance(message, dict):
        message = InboundMessage.from_dict(message)

    parsed = _parse_raw(message.raw_message)
    headers = _header_map(parsed) if parsed is not None else {}

    plain, html, attachment_count = _bodies(parsed) if parsed is not None else ("", "", 0)
    body = message.body or plain or _html_text(html)

    context = MessageContext(
        message_id=message.id or _first(headers, 'message-id'),
        from_address=message.from_address or _first(headers, 'from'),
        to=message.to or _first(headers, 'to'),
        subject=message.subject or _first(headers, 'subject'),
        body=body,
        headers=headers,
        links=extract_links(body, html),
        client_address=message.client_address,
        helo_domain=message.helo_domain,
    )
    context.metadata['attachment_count'] = attachment_count
    context.metadata['has_html'] = bool(html)

    logger.debug(
        f"Parsed message {context.message_id or '<no id>'}: "
        f"{len(headers)} headers, {len(context.links)} links"
    )
    return context


def extract_links(*texts: str) -> List[str]:
    """HTTP(S) links in order of first appearance, without duplicates."""
    seen = set()
    links = []
    for text in texts:
        for match in _LINK_RE.findall(text or ''):
            link = match.rstrip(_TRAILING_PUNCTUATION)
            if link and link not in seen:
                seen.add(link)
                links.append(link)
    return links


def _parse_raw(raw: Any) -> Optional[Message]:
    if raw is None:
        return None
    if not isinstance(raw, (str, bytes, bytearray)):
        raise MessageParseError(f"Raw message must be text or bytes, got {type(raw).__name__}")
    if not raw.strip():
        return None

    try:
        if isinstance(raw, str):
            parsed = message_from_string(raw, policy=policy.compat32)
        else:
            parsed = message_from_bytes(bytes(raw), policy=policy.compat32)
    except (HeaderParseError, UnicodeError, ValueError) as e:
        raise MessageParseError(f"Could not parse raw message: {e}") from e

    if not parsed.keys():
        raise MessageParseError("Raw message has no headers")
    return parsed


def _header_map(parsed: Message) -> Dict[str, List[str]]:
    headers: Dict[str, List[str]] = {}
    for name, value in parsed.items():
        headers.setdefault(name.lower(), []).append(_decode(value))
    return headers


def _decode(value: Any) -> str:
    text = _FOLDING_RE.sub(' ', str(value))
    try:
        return str(make_header(decode_header(text))).strip()
    except (HeaderParseError, UnicodeError, LookupError):
        return text.strip()


def _bodies(parsed: Message) -> Tuple[str, str, int]:
    plain_parts: List[str] = []
    html_parts: List[str] = []
    attachments = 0

    for part in parsed.walk():
        if part.is_multipart():
            continue
        disposition = (part.get('Content-Disposition') or '').lower()
        if 'attachment' in disposition or part.get_filename():
            attachments += 1
            continue

        content_type = part.get_content_type()
        if content_type not in ('text/plain', 'text/html'):
            continue
        text = _payload_text(part)
        if content_type == 'text/plain':
            plain_parts.append(text)
        else:
            html_parts.append(text)

    return "\n".join(plain_parts).strip(), "\n".join(html_parts), attachments


def _payload_text(part: Message) -> str:
    payload = part.get_payload(decode=True)
    if payload is None:
        raw = part.get_payload()
        return raw if isinstance(raw, str) else ''
    charset = part.get_content_charset() or 'utf-8'
    try:
        return payload.decode(charset, errors='replace')
    except LookupError:
        return payload.decode('utf-8', errors='replace')


def _html_text(html: str) -> str:
    if not html:
        return ''
    return BeautifulSoup(html, 'html.parser').get_text(' ', strip=True)


def _first(headers: Dict[str, List[str]], name: str) -> str:
    values = headers.get(name)
    return values[0] if values else ''
