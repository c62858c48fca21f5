"""
Naive Bayes spam classifier with online training.

The token store is written only by ``train_spam``/``train_ham``/``untrain``
(and ``import_state``/``reset``); ``classify`` only reads it. Callers that
train while classifications are in flight must serialize the two.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..exceptions import SnapshotError
from ..settings import ClassifierSettings
from .tokenizer import message_tokens

logger = logging.getLogger(__name__)

_MIN_PROBABILITY = 1e-6


@dataclass
class TokenStatistics:
    """Occurrence counts of one token and its derived spam probability."""
    token: str
    spam_count: int = 0
    ham_count: int = 0
    probability: float = 0.5

    @property
    def total(self) -> int:
        return self.spam_count + self.ham_count


@dataclass
class ClassificationResult:
    """Spam verdict for one message."""
    spam_probability: float = 0.5
    is_spam: bool = False
    confidence: float = 0.0
    top_spam_tokens: List[str] = field(default_factory=list)
    top_ham_tokens: List[str] = field(default_factory=list)

    @property
    def ham_probability(self) -> float:
        return 1.0 - self.spam_probability

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'spam_probability': round(self.spam_probability, 6),
            'ham_probability': round(self.ham_probability, 6),
            'is_spam': self.is_spam,
            'confidence': round(self.confidence, 6),
            'top_spam_tokens': list(self.top_spam_tokens),
            'top_ham_tokens': list(self.top_ham_tokens),
        }


class BayesianClassifier:
    """
    Adaptive spam/ham classifier.

    Token probabilities are Laplace-smoothed occurrence-rate ratios. A message
    is scored from its most "interesting" tokens (furthest from 0.5), combined
    in log-odds space so the result does not depend on token order and does not
    underflow.
    """

    MAX_REPORTED_TOKENS = 10

    def __init__(self, settings: Optional[ClassifierSettings] = None, snapshot: Optional[Dict[str, Any]] = None):
        """
        Args:
            settings: Threshold and smoothing parameters
            snapshot: State previously produced by ``export_state``
        """
        self.settings = settings or ClassifierSettings()
        self._tokens: Dict[str, TokenStatistics] = {}
        self._total_spam = 0
        self._total_ham = 0

        if snapshot is not None:
            self.import_state(snapshot)

    @property
    def total_spam_messages(self) -> int:
        return self._total_spam

    @property
    def total_ham_messages(self) -> int:
        return self._total_ham

    @property
    def is_trained(self) -> bool:
        return (self._total_spam + self._total_ham) > 0

    def __len__(self) -> int:
        return len(self._tokens)

    def classify(self, subject: str, body: str, sender: str = "") -> ClassificationResult:
        """
        Classify one message.

        Args:
            subject: Message subject
            body: Plain-text body
            sender: Sender address

        Returns:
            ClassificationResult; neutral (0.5, confidence 0) when untrained
            or when the message yields no tokens
        """
        tokens = message_tokens(subject, body, sender)

        if not tokens:
            logger.warning("No tokens extracted from email")
            return ClassificationResult()
        if not self.is_trained:
            logger.debug("Classifier untrained, returning neutral result")
            return ClassificationResult()

        probabilities = {token: self.token_probability(token) for token in tokens}
        interesting = self._most_interesting(probabilities)
        spam_probability = self._combine(p for _, p in interesting)

        spam_tokens = [t for t, p in interesting if p > 0.5]
        ham_tokens = [t for t, p in interesting if p < 0.5]
        is_spam = spam_probability >= self.settings.spam_threshold

        logger.debug(f"Bayesian classification: spam={spam_probability:.3f}, isSpam={is_spam}")

        return ClassificationResult(
            spam_probability=spam_probability,
            is_spam=is_spam,
            confidence=abs(spam_probability - 0.5) * 2,
            top_spam_tokens=spam_tokens[:self.MAX_REPORTED_TOKENS],
            top_ham_tokens=ham_tokens[:self.MAX_REPORTED_TOKENS],
        )

    def train_spam(self, subject: str, body: str, sender: str = "") -> None:
        """Count a message as spam."""
        logger.debug("Training on spam message")
        self._train(message_tokens(subject, body, sender), spam=True)

    def train_ham(self, subject: str, body: str, sender: str = "") -> None:
        """Count a message as legitimate."""
        logger.debug("Training on ham message")
        self._train(message_tokens(subject, body, sender), spam=False)

    def untrain(self, subject: str, body: str, was_spam: bool, sender: str = "") -> None:
        """
        Reverse an earlier ``train_spam``/``train_ham`` of the same message.

        Counts never drop below zero; tokens left with no occurrences are
        removed from the store.
        """
        logger.debug(f"Untraining {'spam' if was_spam else 'ham'} message")

        for token in message_tokens(subject, body, sender):
            stats = self._tokens.get(token)
            if stats is None:
                continue
            if was_spam and stats.spam_count > 0:
                stats.spam_count -= 1
            elif not was_spam and stats.ham_count > 0:
                stats.ham_count -= 1
            if stats.total == 0:
                del self._tokens[token]

        if was_spam and self._total_spam > 0:
            self._total_spam -= 1
        elif not was_spam and self._total_ham > 0:
            self._total_ham -= 1

        self._recalculate()

    def token_probability(self, token: str) -> float:
        """Spam probability of a token; never-seen tokens lean slightly to ham."""
        stats = self._tokens.get(token)
        if stats is None:
            return self.settings.unknown_token_probability
        return stats.probability

    def token_statistics(self, token: str) -> Optional[TokenStatistics]:
        """Copy of the statistics held for a token."""
        stats = self._tokens.get(token)
        if stats is None:
            return None
        return TokenStatistics(stats.token, stats.spam_count, stats.ham_count, stats.probability)

    def get_stats(self) -> Dict[str, int]:
        """Training statistics."""
        return {
            'total_spam': self._total_spam,
            'total_ham': self._total_ham,
            'unique_tokens': len(self._tokens),
            'training_messages': self._total_spam + self._total_ham,
        }

    def export_state(self) -> Dict[str, Any]:
        """Plain, JSON-serializable snapshot of the token store."""
        return {
            'tokens': [
                [stats.token, stats.spam_count, stats.ham_count]
                for stats in sorted(self._tokens.values(), key=lambda s: s.token)
            ],
            'total_spam_messages': self._total_spam,
            'total_ham_messages': self._total_ham,
        }

    def import_state(self, snapshot: Dict[str, Any]) -> None:
        """
        Replace the token store with a snapshot from ``export_state``.

        Raises:
            SnapshotError: If the snapshot is malformed; the current state is
                left untouched in that case
        """
        if not isinstance(snapshot, dict):
            raise SnapshotError("Snapshot must be a mapping")

        tokens: Dict[str, TokenStatistics] = {}
        for entry in snapshot.get('tokens') or []:
            token, spam_count, ham_count = self._snapshot_entry(entry)
            if spam_count + ham_count > 0:
                tokens[token] = TokenStatistics(token, spam_count, ham_count)

        total_spam = self._count(snapshot.get('total_spam_messages', 0), 'total_spam_messages')
        total_ham = self._count(snapshot.get('total_ham_messages', 0), 'total_ham_messages')

        self._tokens = tokens
        self._total_spam = total_spam
        self._total_ham = total_ham
        self._recalculate()
        logger.info(f"Imported classifier state: {len(tokens)} tokens, {total_spam} spam / {total_ham} ham")

    def reset(self) -> None:
        """Forget all training."""
        logger.info("Resetting Bayesian filter")
        self._tokens.clear()
        self._total_spam = 0
        self._total_ham = 0

    def _train(self, tokens: Iterable[str], spam: bool) -> None:
        for token in tokens:
            stats = self._tokens.get(token)
            if stats is None:
                stats = self._tokens[token] = TokenStatistics(token)
            if spam:
                stats.spam_count += 1
            else:
                stats.ham_count += 1

        if spam:
            self._total_spam += 1
        else:
            self._total_ham += 1
        self._recalculate()

    def _recalculate(self) -> None:
        for stats in self._tokens.values():
            stats.probability = self._calculate_probability(stats)

    def _calculate_probability(self, stats: TokenStatistics) -> float:
        if self._total_spam == 0 and self._total_ham == 0:
            return 0.5

        in_spam = stats.spam_count / self._total_spam if self._total_spam > 0 else 0.0
        in_ham = stats.ham_count / self._total_ham if self._total_ham > 0 else 0.0
        smoothing = self.settings.smoothing
        return (in_spam + smoothing) / (in_spam + in_ham + 2 * smoothing)

    def _most_interesting(self, probabilities: Dict[str, float]) -> List[tuple]:
        ranked = sorted(probabilities.items(), key=lambda item: (-abs(item[1] - 0.5), item[0]))
        return ranked[:self.settings.interesting_tokens]

    @staticmethod
    def _combine(probabilities: Iterable[float]) -> float:
        log_odds = 0.0
        count = 0
        for p in probabilities:
            p = min(max(p, _MIN_PROBABILITY), 1 - _MIN_PROBABILITY)
            log_odds += math.log(p) - math.log(1 - p)
            count += 1
        if count == 0:
            return 0.5
        # Numerically stable logistic
        if log_odds >= 0:
            return 1.0 / (1.0 + math.exp(-log_odds))
        odds = math.exp(log_odds)
        return odds / (1.0 + odds)

    @staticmethod
    def _snapshot_entry(entry: Any) -> tuple:
        if isinstance(entry, dict):
            token = entry.get('token')
            spam_count = entry.get('spam_count', 0)
            ham_count = entry.get('ham_count', 0)
        elif isinstance(entry, (list, tuple)) and len(entry) == 3:
            token, spam_count, ham_count = entry
        else:
            raise SnapshotError(f"Malformed token entry: {entry!r}")

        if not isinstance(token, str) or not token:
            raise SnapshotError(f"Malformed token in entry: {entry!r}")
        return (
            token,
            BayesianClassifier._count(spam_count, f"{token}.spam_count"),
            BayesianClassifier._count(ham_count, f"{token}.ham_count"),
        )

    @staticmethod
    def _count(value: Any, what: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise SnapshotError(f"{what} must be a non-negative integer, got {value!r}")
        return value
