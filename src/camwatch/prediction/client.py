"""
Client for the remote prediction API.

Two calls:
- POST <api_url>/predict   multipart image + model (+ threshold)
- GET  <api_url>/list-models   roster of available models

Prediction failures are never retried; they are reported to the caller
as InferenceError.
"""

import logging
from typing import Any, List, Optional, Sequence

import requests

from ..errors import InferenceError


logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://vertiapp.xyz"


class RemoteInferenceClient:
    """
    Uploads frames to the prediction API.

    Usage:
        client = RemoteInferenceClient("https://vertiapp.xyz")
        result = client.predict(jpeg_bytes, "early-blight")
    """

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        predict_endpoint: str = "/predict",
        models_endpoint: str = "/list-models",
        threshold: Optional[float] = 0.5,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize client.

        Args:
            api_url: Base URL of the prediction API
            predict_endpoint: Path of the prediction endpoint
            models_endpoint: Path of the model list endpoint
            threshold: Confidence threshold sent with every request (None omits it)
            timeout: HTTP request timeout in seconds
            session: Optional requests session to reuse
        """
        self.api_url = api_url.rstrip('/')
        self.predict_url = self.api_url + predict_endpoint
        self.models_url = self.api_url + models_endpoint
        self.threshold = threshold
        self.timeout = timeout
        self.session = session or requests.Session()

    def predict(self, image: bytes, model: str) -> Any:
        """
        Run one prediction.

        Args:
            image: Encoded JPEG frame
            model: Model identifier

        Returns:
            The decoded JSON response body, unmodified

        Raises:
            InferenceError: on transport failure, non-2xx status or non-JSON body
        """
        data = {'model': model}
        if self.threshold is not None:
            data['threshold'] = str(self.threshold)

        try:
            response = self.session.post(
                self.predict_url,
                files={'image': ('image.jpg', image, 'image/jpeg')},
                data=data,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise InferenceError(
                f"prediction with model {model} failed: HTTP {e.response.status_code}"
            ) from e
        except requests.exceptions.RequestException as e:
            raise InferenceError(f"prediction with model {model} failed: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise InferenceError(f"prediction with model {model} returned invalid JSON") from e

    def list_models(self, fallback: Sequence[str] = ()) -> List[str]:
        """
        Fetch the model roster, falling back when the API is unavailable.

        Args:
            fallback: Roster used when the request fails or returns nothing

        Returns:
            list: Model identifiers
        """
        try:
            response = self.session.get(self.models_url, timeout=self.timeout)
            response.raise_for_status()
            models = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning("Error fetching models: %s", e)
            return list(fallback)

        if not isinstance(models, list) or not models:
            logger.warning("Model list response was empty or malformed, using fallback")
            return list(fallback)

        logger.info("Available models: %s", models)
        return [str(m) for m in models]

    def close(self) -> None:
        self.session.close()
