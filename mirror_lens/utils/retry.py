import asyncio
from typing import Any, Awaitable, Callable

from openai import RateLimitError


async def llm_call_with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    max_retries: int = 4,
    base_delay: float = 5.0,
    **kwargs: Any,
) -> Any:
    """Await an OpenAI API coroutine with exponential backoff on RateLimitError.

    With the default base delay, waits 5, 10, 20 seconds between retries.
    """
    for attempt in range(max_retries):
        try:
            return await fn(*args, **kwargs)
        except RateLimitError:
            if attempt == max_retries - 1:
                raise
            await asyncio.sleep(base_delay * (2 ** attempt))
