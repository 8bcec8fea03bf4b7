"""Streaming client for the generation backend.

Talks to an OpenAI-compatible chat completions endpoint (Azure OpenAI's v1
surface by default) and yields text fragments as they arrive.  Every SDK
exception is converted into a BackendFailure here, at the boundary.
"""

import logging
import time
from collections.abc import Iterator

import openai
from openai import OpenAI

from daily_report.config import TEMPERATURE, llm_settings
from daily_report.transform.errors import BackendFailure, FailureKind

logger = logging.getLogger(__name__)


def failure_from_exception(exc: BaseException) -> BackendFailure:
    """Normalise any exception raised while talking to the backend into a BackendFailure."""
    if isinstance(exc, BackendFailure):
        return exc
    message = str(exc) or exc.__class__.__name__
    # APITimeoutError subclasses APIConnectionError, so check it first
    if isinstance(exc, (openai.APITimeoutError, TimeoutError)):
        return BackendFailure(FailureKind.TIMEOUT, message)
    if isinstance(exc, openai.APIConnectionError):
        return BackendFailure(FailureKind.CONNECTION, message)
    if isinstance(exc, openai.APIStatusError):
        code = getattr(exc, "code", None)
        return BackendFailure(FailureKind.STATUS, message, status_code=exc.status_code, code=str(code) if code else None)
    return BackendFailure(FailureKind.UNKNOWN, message)


class OpenAIBackend:
    """One streaming chat completion per call to stream()."""

    def __init__(self, client: OpenAI | None = None, deployment: str | None = None, temperature: float = TEMPERATURE):
        self._client = client
        self._deployment = deployment or ""
        self._temperature = temperature

    def _connect(self) -> tuple[OpenAI, str]:
        """Return a client and deployment, building the client from the environment if needed."""
        if self._client is not None:
            return self._client, self._deployment

        settings = llm_settings()
        # All three variables must be set before a request can be attempted
        if not all([settings["endpoint"], settings["api_key"], settings["deployment"]]):
            raise BackendFailure(
                FailureKind.MISSING_CREDENTIAL,
                "AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_API_KEY and AZURE_OPENAI_DEPLOYMENT_NAME must all be set",
            )

        base_url = f"{settings['endpoint']}/openai/v1/"
        logger.info("Connecting to %s (deployment=%s)", base_url, settings["deployment"])
        self._client = OpenAI(base_url=base_url, api_key=settings["api_key"])
        self._deployment = settings["deployment"]
        return self._client, self._deployment

    def stream(self, prompt: str) -> Iterator[str]:
        """Send *prompt* and yield non-empty text fragments in generation order.

        Raises BackendFailure on any error, including before the first fragment.
        """
        client, deployment = self._connect()

        t0 = time.time()
        response = None
        try:
            response = client.chat.completions.create(
                model=deployment,
                messages=[{"role": "user", "content": prompt}],
                temperature=self._temperature,
                stream=True,
            )
            for chunk in response:
                if not chunk.choices:
                    continue
                text = chunk.choices[0].delta.content
                if text:
                    yield text
            logger.debug("Stream finished in %.1fs", time.time() - t0)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("Generation request failed after %.1fs: %s", time.time() - t0, exc)
            raise failure_from_exception(exc) from exc
        finally:
            if response is not None:
                response.close()
