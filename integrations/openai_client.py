"""
OpenAI-backed text generator.

One responsibility: send the personality prompt, return the text, and when
it goes wrong translate the SDK's exception zoo into a single
ExternalServiceError with a kind the retry policy understands.

The SDK's own retry loop is switched off (max_retries=0). Retrying is the
RetryPolicy's job, so the number of attempts and the backoff are visible and
testable in one place instead of hidden inside the client.
"""

import logging

import openai
from openai import AsyncOpenAI

from integrations.base import TextGenerator
from models.analysis import AnalysisInput
from models.enums import ExternalErrorKind
from models.errors import ExternalServiceError

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """Based on the following information, generate a short personality summary (2-3 sentences):

Name: {name}
Age: {age}
Description: {description}

Instructions:
- If the provided information is sufficient, create a personality summary based on the given details.
- If the information is insufficient, incomplete, or too vague, generate a creative and randomized personality summary that is interesting and believable.
- The summary should always be 2-3 sentences long, regardless of whether it's based on provided information or randomized.
- Make the randomized summary diverse and varied each time, incorporating different personality traits, interests, and characteristics.

Provide a concise, insightful personality summary:"""


def build_prompt(analysis_input: AnalysisInput) -> str:
    return PROMPT_TEMPLATE.format(
        name=analysis_input.name,
        age=analysis_input.age,
        description=analysis_input.description,
    )


def classify_openai_error(exc: openai.OpenAIError) -> ExternalErrorKind:
    """
    Map an SDK exception to an ExternalErrorKind.

    Order matters: APITimeoutError is a subclass of APIConnectionError, and
    every *StatusError is a subclass of APIStatusError.
    """
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ExternalErrorKind.AUTHENTICATION
    if isinstance(exc, openai.RateLimitError):
        return ExternalErrorKind.RATE_LIMITED
    if isinstance(exc, openai.APITimeoutError):
        return ExternalErrorKind.TIMEOUT
    if isinstance(exc, openai.APIConnectionError):
        return ExternalErrorKind.CONNECTION
    if isinstance(exc, (openai.BadRequestError, openai.UnprocessableEntityError)):
        return ExternalErrorKind.MALFORMED_REQUEST
    return ExternalErrorKind.UPSTREAM


class OpenAITextGenerator(TextGenerator):

    def __init__(self, client: AsyncOpenAI, model: str, max_output_tokens: int = 1000):
        self._client = client
        self._model = model
        self._max_output_tokens = max_output_tokens

    @classmethod
    def from_api_key(
        cls, api_key: str, model: str, max_output_tokens: int = 1000, timeout: float = 30.0
    ) -> "OpenAITextGenerator":
        client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        return cls(client, model, max_output_tokens)

    async def generate(self, analysis_input: AnalysisInput) -> str:
        try:
            response = await self._client.responses.create(
                model=self._model,
                max_output_tokens=self._max_output_tokens,
                input=build_prompt(analysis_input),
            )
        except openai.OpenAIError as e:
            kind = classify_openai_error(e)
            logger.warning(f"OpenAI call failed ({kind.value}): {e}")
            raise ExternalServiceError(kind, str(e)) from e

        summary = (response.output_text or "").strip()
        if not summary:
            raise ExternalServiceError(
                ExternalErrorKind.MALFORMED_RESPONSE,
                f"Response {getattr(response, 'id', '?')} contained no output text",
            )
        return summary

    async def close(self) -> None:
        await self._client.close()
