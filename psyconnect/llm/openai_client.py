import logging

import httpx

from ..core.config import settings
from ..core.errors import CompletionError, ConfigurationError

logger = logging.getLogger(__name__)


async def chat_completion(messages, temperature: float = 0.2, response_format: dict | None = None) -> str:
    if not settings.OPENAI_API_KEY:
        raise ConfigurationError("OPENAI_API_KEY is not configured")
    url = f"{settings.OPENAI_BASE_URL.rstrip('/')}/chat/completions"
    headers = {"Authorization": f"Bearer {settings.OPENAI_API_KEY}"}
    payload = {
        "model": settings.OPENAI_MODEL,
        "messages": messages,
        "temperature": temperature,
    }
    if response_format:
        payload["response_format"] = response_format
    try:
        async with httpx.AsyncClient(timeout=settings.OPENAI_TIMEOUT_SECONDS) as client:
            r = await client.post(url, headers=headers, json=payload)
            r.raise_for_status()
            data = r.json()
    except httpx.HTTPStatusError as e:
        logger.warning("completion request failed with HTTP %s", e.response.status_code)
        raise CompletionError(f"completion service returned {e.response.status_code}") from e
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("completion request failed: %s", type(e).__name__)
        raise CompletionError("completion service unavailable") from e
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise CompletionError("unexpected completion response shape") from e
    if not isinstance(content, str):
        raise CompletionError("completion response had no text content")
    return content
