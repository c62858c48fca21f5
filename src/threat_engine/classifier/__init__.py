"""
Adaptive statistical spam classification.
"""

from .bayesian import BayesianClassifier, ClassificationResult, TokenStatistics
from .tokenizer import tokenize, message_tokens

__all__ = [
    'BayesianClassifier',
    'ClassificationResult',
    'TokenStatistics',
    'tokenize',
    'message_tokens',
]
