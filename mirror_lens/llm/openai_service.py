"""OpenAI chat-completions adapter for the generative text service."""

from __future__ import annotations

import asyncio
import logging

from openai import AsyncOpenAI, OpenAIError

from mirror_lens.llm.base import GenerationError
from mirror_lens.utils.retry import llm_call_with_retry

_log = logging.getLogger(__name__)


class OpenAITextService:
    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        *,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        timeout: float = 30.0,
    ) -> None:
        self._client = client or AsyncOpenAI(api_key=api_key)
        self._model = model
        self._timeout = timeout

    async def complete(
        self,
        prompt: str,
        *,
        temperature: float,
        json_output: bool = True,
        system: str | None = None,
        model: str | None = None,
    ) -> str:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict = {
            "model": model or self._model,
            "messages": messages,
            "temperature": temperature,
        }
        if json_output:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await asyncio.wait_for(
                llm_call_with_retry(self._client.chat.completions.create, **kwargs),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise GenerationError(f"completion timed out after {self._timeout}s") from exc
        except OpenAIError as exc:
            raise GenerationError(f"completion failed: {exc}") from exc

        if not response.choices:
            _log.warning("completion returned no choices (model=%s)", kwargs["model"])
            return ""
        return response.choices[0].message.content or ""
