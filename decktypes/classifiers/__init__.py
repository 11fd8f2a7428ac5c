"""
分类器模块
"""

from .classifier import ClassificationResult, DeckClassifier

__all__ = [
    "ClassificationResult",
    "DeckClassifier",
]
