"""Collaborator services: sentiment classification and text generation."""

from .sentiment_classifier import (
    ClassifierError,
    ClassifierOutput,
    HuggingFaceSentimentClassifier,
    SentimentClassifier,
)
from .text_generator import (
    GeneratorError,
    OpenAITextGenerator,
    TextGenerator,
)

__all__ = [
    "ClassifierError",
    "ClassifierOutput",
    "HuggingFaceSentimentClassifier",
    "SentimentClassifier",
    "GeneratorError",
    "OpenAITextGenerator",
    "TextGenerator",
]
