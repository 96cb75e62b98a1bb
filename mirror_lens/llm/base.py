"""Generative text service protocol.

Implementations return raw text (JSON text when ``json_output`` is set); they
make no promise that the text parses or matches any schema.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


class GenerationError(Exception):
    """The service was unreachable, rejected the request, or timed out."""


@runtime_checkable
class TextGenerationService(Protocol):
    async def complete(
        self,
        prompt: str,
        *,
        temperature: float,
        json_output: bool = True,
        system: str | None = None,
        model: str | None = None,
    ) -> str:
        ...
