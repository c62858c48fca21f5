"""
HTML sanitizer - strips active content from message bodies with BeautifulSoup.
"""

import logging
import re
from collections import Counter
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup

from .base import ContentSanitizer
from .models import SanitizationResult

logger = logging.getLogger(__name__)

DANGEROUS_TAGS = [
    "script", "iframe", "object", "embed", "applet", "link", "meta", "base",
    "form", "input", "button", "textarea", "select",
]
DANGEROUS_PROTOCOLS = ("javascript:", "data:", "vbscript:", "file:", "about:")
URL_ATTRIBUTES = ("href", "src", "action", "formaction", "background", "poster")

_WHITESPACE_RE = re.compile(r'\n\s*\n+')


class HTMLSanitizer(ContentSanitizer):
    """
    Default sanitizer.

    Options (keyword arguments of ``sanitize``):
        allow_images: Keep ``<img>`` elements (default True)
        allow_links: Keep ``<a>`` elements; otherwise they become text
            followed by the target (default True)
        remove_styles: Drop ``<style>`` elements and inline styles
        plain_text: Return the visible text only
    """

    @property
    def name(self) -> str:
        return "sanitizer"

    @property
    def description(self) -> str:
        return "Removes scripts, event handlers and dangerous URLs from HTML"

    def sanitize(self, content: str, **options) -> SanitizationResult:
        logger.debug("Sanitizing HTML email content")
        opts = self._options(options)
        soup = BeautifulSoup(content or '', 'html.parser')
        removed: Counter = Counter()

        for tag in soup.find_all(DANGEROUS_TAGS):
            if tag.decomposed:
                # Went with its parent
                continue
            removed[f"{tag.name} tag"] += 1
            tag.decompose()

        if opts['remove_styles']:
            for tag in soup.find_all('style'):
                removed["style tag"] += 1
                tag.decompose()

        for tag in soup.find_all(True):
            for attribute in list(tag.attrs):
                name = attribute.lower()
                if name.startswith('on'):
                    del tag.attrs[attribute]
                    removed["event handler"] += 1
                elif name == 'style' and opts['remove_styles']:
                    del tag.attrs[attribute]
                    removed["inline style"] += 1
                elif name in URL_ATTRIBUTES and _is_dangerous_url(tag.attrs[attribute]):
                    tag.attrs[attribute] = '#'
                    removed["dangerous URL"] += 1

        if not opts['allow_links']:
            for anchor in soup.find_all('a'):
                target = anchor.get('href', '')
                anchor.replace_with(f"{anchor.get_text()} [link removed: {target}]")
                removed["link"] += 1

        if not opts['allow_images']:
            for image in soup.find_all('img'):
                image.replace_with("[Image blocked for security]")
                removed["image"] += 1

        if opts['plain_text']:
            text = soup.get_text('\n')
            safe = _WHITESPACE_RE.sub('\n\n', text).strip()
        else:
            safe = str(soup)

        summary = [f"{count} {what}(s)" for what, count in sorted(removed.items())]
        if summary:
            logger.info(f"Sanitized content: removed {', '.join(summary)}")
        return SanitizationResult(content=safe, removed=summary)

    @staticmethod
    def _options(options: Dict[str, Any]) -> Dict[str, bool]:
        return {
            'allow_images': bool(options.get('allow_images', True)),
            'allow_links': bool(options.get('allow_links', True)),
            'remove_styles': bool(options.get('remove_styles', False)),
            'plain_text': bool(options.get('plain_text', False)),
        }


def _is_dangerous_url(value: Optional[Any]) -> bool:
    if not isinstance(value, str):
        return False
    compact = re.sub(r'\s+', '', value).lower()
    return compact.startswith(DANGEROUS_PROTOCOLS)
