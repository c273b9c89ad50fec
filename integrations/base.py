"""
Abstract contracts for the two external services the orchestrator talks to.

The orchestrator is written against these interfaces, never against the
OpenAI SDK or the QStash HTTP API directly:
- TextGenerator = "turn an AnalysisInput into a short text"
- DelayedDispatcher = "POST this payload to that URL in N seconds, at least once"

Concrete implementations:
- OpenAITextGenerator  (integrations/openai_client.py)
- QStashDispatcher     (integrations/qstash.py)

Tests pass in small fakes that implement the same methods.
"""

from abc import ABC, abstractmethod

from models.analysis import AnalysisInput


class TextGenerator(ABC):

    @abstractmethod
    async def generate(self, analysis_input: AnalysisInput) -> str:
        """
        Produce the analysis text for one input.

        Raises:
            ExternalServiceError with a classified kind. The retry policy
            uses the kind to decide whether another attempt is worth it.
        """
        ...


class DelayedDispatcher(ABC):

    @abstractmethod
    async def schedule(self, target_url: str, payload: dict, delay_seconds: int) -> str:
        """
        Ask the dispatch service to POST `payload` to `target_url` after
        roughly `delay_seconds`. Fire-and-forget: returns once the service
        has accepted the message, with the service's message id.
        """
        ...
