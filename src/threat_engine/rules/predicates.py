"""
Custom rule predicates and the registry that names them.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from ..models import MessageContext

logger = logging.getLogger(__name__)


class Predicate(ABC):
    """
    Base class for custom conditions.

    A predicate receives the message context and the condition's argument
    (the plain condition value, possibly None) and answers yes or no.
    """

    @property
    def description(self) -> str:
        """Predicate description."""
        return ""

    @abstractmethod
    def evaluate(self, context: MessageContext, argument: Any) -> bool:
        """
        Test the message.

        Args:
            context: Message being evaluated
            argument: Condition value, already unwrapped

        Returns:
            True if the condition holds
        """
        pass


class FunctionPredicate(Predicate):
    """Adapts a plain ``(context, argument) -> bool`` callable."""

    def __init__(self, func: Callable[[MessageContext, Any], bool], description: str = ""):
        self._func = func
        self._description = description

    @property
    def description(self) -> str:
        return self._description

    def evaluate(self, context: MessageContext, argument: Any) -> bool:
        return bool(self._func(context, argument))


class HasAttachments(Predicate):
    @property
    def description(self) -> str:
        return "Message carries at least one attachment"

    def evaluate(self, context: MessageContext, argument: Any) -> bool:
        count = context.metadata.get('attachment_count')
        if count is not None:
            return count > 0
        content_type = (context.header('content-type') or '').lower()
        return content_type.startswith('multipart/mixed')


class IsReply(Predicate):
    @property
    def description(self) -> str:
        return "Subject starts with Re:"

    def evaluate(self, context: MessageContext, argument: Any) -> bool:
        return (context.subject or '').strip().lower().startswith('re:')


class IsForwarded(Predicate):
    @property
    def description(self) -> str:
        return "Subject starts with Fwd: or Fw:"

    def evaluate(self, context: MessageContext, argument: Any) -> bool:
        subject = (context.subject or '').strip().lower()
        return subject.startswith('fwd:') or subject.startswith('fw:')


class SenderInList(Predicate):
    """True when the From address contains any entry of the argument list."""

    @property
    def description(self) -> str:
        return "Sender address matches one of the listed addresses or domains"

    def evaluate(self, context: MessageContext, argument: Any) -> bool:
        if not argument:
            return False
        entries = [argument] if isinstance(argument, str) else list(argument)
        sender = (context.from_address or '').lower()
        return any(str(entry).lower() in sender for entry in entries if entry)


class HasTag(Predicate):
    @property
    def description(self) -> str:
        return "Message already carries the given tag"

    def evaluate(self, context: MessageContext, argument: Any) -> bool:
        return argument is not None and str(argument) in context.tags


class PredicateRegistry:
    """
    Name-keyed registry of predicates.
    """

    def __init__(self, defaults: bool = True):
        """
        Args:
            defaults: Register the built-in predicates
        """
        self._predicates: Dict[str, Predicate] = {}
        if defaults:
            for name, predicate in default_predicates().items():
                self._predicates[name] = predicate

    def register(self, name: str, predicate: Predicate) -> None:
        """
        Register a predicate, replacing any with the same name.

        Plain callables are wrapped in :class:`FunctionPredicate`.
        """
        if not isinstance(predicate, Predicate):
            if not callable(predicate):
                raise TypeError(f"Predicate '{name}' must be a Predicate or a callable")
            predicate = FunctionPredicate(predicate)

        if name in self._predicates:
            logger.warning(f"Predicate '{name}' is already registered. Replacing.")
        self._predicates[name] = predicate
        logger.debug(f"Registered custom predicate: {name}")

    def unregister(self, name: str) -> None:
        if name in self._predicates:
            del self._predicates[name]
            logger.info(f"Unregistered predicate: {name}")

    def get(self, name: str) -> Optional[Predicate]:
        return self._predicates.get(name)

    def names(self) -> List[str]:
        return sorted(self._predicates)

    def __contains__(self, name: str) -> bool:
        return name in self._predicates


def default_predicates() -> Dict[str, Predicate]:
    """Fresh instances of the built-in predicates."""
    return {
        'has_attachments': HasAttachments(),
        'is_reply': IsReply(),
        'is_forwarded': IsForwarded(),
        'sender_in_list': SenderInList(),
        'has_tag': HasTag(),
    }
