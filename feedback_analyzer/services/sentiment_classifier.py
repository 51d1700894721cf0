"""
Sentiment classification against a hosted text-classification model.

The pipeline only depends on the SentimentClassifier protocol: one call per
text, returning a raw label and a confidence score, possibly failing. The
default implementation calls the Hugging Face inference endpoint for an
SST-2 style model, which reports POSITIVE / NEGATIVE labels only.
"""

import logging
import os
import random
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import requests

logger = logging.getLogger(__name__)

DEFAULT_SENTIMENT_MODEL = "distilbert/distilbert-base-uncased-finetuned-sst-2-english"
DEFAULT_API_URL_TEMPLATE = "https://api-inference.huggingface.co/models/{model}"


class ClassifierError(Exception):
    """Raised when a text could not be classified."""

    pass


@dataclass
class ClassifierOutput:
    """Top label reported by the classifier for one text."""

    label: str
    score: float


class SentimentClassifier(Protocol):
    """Protocol for sentiment classifiers used by the pipeline."""

    def classify(self, text: str) -> ClassifierOutput:
        """Classify one text. Raises ClassifierError on failure."""
        ...


class HuggingFaceSentimentClassifier:
    """Client for a hosted Hugging Face text-classification model."""

    # HTTP timeout: (connect_timeout, read_timeout) in seconds
    DEFAULT_TIMEOUT = (10, 30)

    # Retry configuration for transient errors (429 rate limit, 503 model loading, 5xx)
    MAX_RETRIES = 3
    RETRY_DELAY_BASE = 2  # seconds, exponential backoff: 2s, 4s, 8s
    RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

    def __init__(
        self,
        api_token: Optional[str] = None,
        model: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: tuple = None,
        max_retries: int = None,
    ):
        self.model = model or os.getenv("SENTIMENT_MODEL", DEFAULT_SENTIMENT_MODEL)
        self.api_url = api_url or os.getenv(
            "SENTIMENT_API_URL", DEFAULT_API_URL_TEMPLATE
        ).format(model=self.model)
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.max_retries = max_retries if max_retries is not None else self.MAX_RETRIES

        self.session = requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
        })
        token = api_token or os.getenv("HF_API_TOKEN")
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    @staticmethod
    def _add_jitter(base_delay: float) -> float:
        """Add 0-50% of base delay so concurrent retries don't collide."""
        return base_delay + random.uniform(0, 0.5 * base_delay)

    def _post_with_retry(self, payload: dict) -> Any:
        """
        POST to the inference endpoint with retry on transient errors.

        Retries on 429, 5xx (503 is returned while the model is loading) and
        connection errors. Other 4xx errors raise immediately.
        """
        for attempt in range(self.max_retries + 1):
            try:
                response = self.session.post(self.api_url, json=payload, timeout=self.timeout)

                if response.status_code in self.RETRYABLE_STATUS_CODES and attempt < self.max_retries:
                    delay = self._add_jitter(self.RETRY_DELAY_BASE * (2 ** attempt))
                    logger.warning(
                        f"Sentiment API error {response.status_code}, "
                        f"retrying in {delay:.1f}s (attempt {attempt + 1}/{self.max_retries + 1})"
                    )
                    time.sleep(delay)
                    continue

                response.raise_for_status()
                return response.json()

            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                if attempt < self.max_retries:
                    delay = self._add_jitter(self.RETRY_DELAY_BASE * (2 ** attempt))
                    logger.warning(
                        f"Sentiment API connection error: {e}, "
                        f"retrying in {delay:.1f}s (attempt {attempt + 1}/{self.max_retries + 1})"
                    )
                    time.sleep(delay)
                else:
                    raise

        raise RuntimeError("Unexpected retry loop exit")

    @staticmethod
    def _top_prediction(data: Any) -> ClassifierOutput:
        """
        Pick the highest-scoring label from the endpoint's response.

        The endpoint returns either [[{label, score}, ...]] or [{label, score}, ...].
        """
        predictions = data
        if isinstance(predictions, list) and predictions and isinstance(predictions[0], list):
            predictions = predictions[0]
        if not isinstance(predictions, list) or not predictions:
            raise ClassifierError(f"Unexpected classifier response: {data!r}"[:200])

        try:
            best = max(predictions, key=lambda p: float(p["score"]))
            return ClassifierOutput(label=str(best["label"]), score=float(best["score"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ClassifierError(f"Malformed classifier prediction: {e}") from e

    def classify(self, text: str) -> ClassifierOutput:
        """Classify one text, returning the top label and its score."""
        try:
            data = self._post_with_retry({"inputs": text})
        except requests.exceptions.RequestException as e:
            raise ClassifierError(f"Sentiment API request failed: {e}") from e
        return self._top_prediction(data)
