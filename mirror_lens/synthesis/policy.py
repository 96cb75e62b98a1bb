"""The one synthesis policy every generation task goes through.

  1. call the generative service (bounded by a timeout)
  2. parse the text as a JSON object and check its top-level shape
  3. on a parse/shape/repair failure, call again exactly once with the same prompt
  4. repair the parsed object against the task schema
  5. on service failure or a second bad answer, return the task default

The caller always gets a schema-valid value; the tag says how it was obtained.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, TypeVar

from mirror_lens.llm.base import TextGenerationService
from mirror_lens.synthesis.result import Defaulted, Repaired, SynthesisResult, Valid
from mirror_lens.utils.jsonparse import parse_json_object

_log = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS = 2

Repair = Callable[[dict[str, Any]], tuple[T, list[str]]]


def _has_shape(data: dict[str, Any] | None, required_keys: tuple[str, ...]) -> bool:
    if data is None:
        return False
    if not required_keys:
        return bool(data)
    return all(key in data for key in required_keys)


async def synthesize(
    llm: TextGenerationService,
    prompt: str,
    *,
    task: str,
    temperature: float,
    repair: Repair,
    default: Callable[[], T],
    required_keys: tuple[str, ...] = (),
    system: str | None = None,
    model: str | None = None,
    timeout: float | None = None,
) -> SynthesisResult[T]:
    """Run one generation task under the retry-once / default contract. Never raises."""
    failure = "no attempt made"
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            text = await asyncio.wait_for(
                llm.complete(
                    prompt,
                    temperature=temperature,
                    json_output=True,
                    system=system,
                    model=model,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            _log.warning("%s: generation timed out after %ss, using default", task, timeout)
            return Defaulted(default(), reason="timeout")
        except Exception as exc:
            # Service unreachable: no retry, straight to the default.
            _log.warning("%s: generation failed (%s), using default", task, exc)
            return Defaulted(default(), reason=f"unreachable: {exc}")

        data = parse_json_object(text)
        if not _has_shape(data, required_keys):
            failure = "unparseable output" if data is None else "missing required fields"
            _log.info("%s: %s on attempt %d", task, failure, attempt)
            continue

        try:
            value, notes = repair(data)
        except Exception as exc:
            failure = f"unsalvageable output: {exc}"
            _log.info("%s: could not repair output on attempt %d: %s", task, attempt, exc)
            continue

        if notes:
            _log.debug("%s: repaired output: %s", task, "; ".join(notes))
            return Repaired(value, notes=tuple(notes))
        return Valid(value)

    _log.warning("%s: %s after %d attempts, using default", task, failure, MAX_ATTEMPTS)
    return Defaulted(default(), reason=failure)
