from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import aclosing
from functools import lru_cache
from typing import Any, Optional

import httpx
from loguru import logger

from app.core.config import settings
from app.services.stream_registry import CancellationHandle

GENERATE_PATH = '/api/generate'


class InferenceError(Exception):
    """The generation service failed or could not be reached."""


class InferenceCancelled(Exception):
    """The stream was stopped through its cancellation handle."""


def parse_record(line: str) -> Optional[dict[str, Any]]:
    """Decode one NDJSON line from the generation service.

    Returns ``None`` for blank or malformed lines; those are skipped, not fatal.
    """
    raw = line.strip()
    if not raw:
        return None
    try:
        record = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning('inference.record.malformed', error=str(exc), line=raw[:200])
        return None
    if not isinstance(record, dict):
        logger.warning('inference.record.unexpected', line=raw[:200])
        return None
    return record


async def _next_line(lines: AsyncIterator[str]) -> Optional[str]:
    try:
        return await lines.__anext__()
    except StopAsyncIteration:
        return None


async def read_line_or_cancel(lines: AsyncIterator[str], handle: CancellationHandle) -> Optional[str]:
    """Await the next line, giving up as soon as ``handle`` is cancelled.

    Returns ``None`` at end of body. The pending read is cancelled and awaited
    before :class:`InferenceCancelled` is raised, so the caller can close the
    response right after.
    """
    read = asyncio.ensure_future(_next_line(lines))
    stop = asyncio.ensure_future(handle.wait())
    try:
        await asyncio.wait({read, stop}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (read, stop):
            if not task.done():
                task.cancel()
        await asyncio.gather(read, stop, return_exceptions=True)
    if handle.cancelled:
        raise InferenceCancelled()
    return read.result()


class InferenceClient:
    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        timeout: Optional[float] = None,
        connect_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip('/')
        self._model = model
        self._timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self._transport = transport

    @property
    def model(self) -> str:
        return self._model

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def stream_fragments(
        self,
        prompt: str,
        handle: CancellationHandle,
    ) -> AsyncGenerator[str, None]:
        """Yield generated text fragments in arrival order.

        Ends normally on a ``done`` record or end of body. Raises
        :class:`InferenceCancelled` once ``handle`` is cancelled and
        :class:`InferenceError` on transport or service failures.
        """
        if handle.cancelled:
            raise InferenceCancelled()
        payload = {'model': self._model, 'prompt': prompt, 'stream': True}
        logger.debug('inference.request', model=self._model, prompt_len=len(prompt))
        try:
            async with self._build_client() as client:
                async with client.stream('POST', GENERATE_PATH, json=payload) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode('utf-8', errors='replace')
                        raise InferenceError(f'generation service returned {response.status_code}: {body[:200]}')
                    async with aclosing(response.aiter_lines()) as lines:
                        while True:
                            line = await read_line_or_cancel(lines, handle)
                            if line is None:
                                break
                            record = parse_record(line)
                            if record is None:
                                continue
                            error = record.get('error')
                            if error:
                                raise InferenceError(str(error))
                            fragment = record.get('response')
                            if isinstance(fragment, str) and fragment:
                                yield fragment
                            if record.get('done'):
                                return
                    if handle.cancelled:
                        raise InferenceCancelled()
        except httpx.HTTPError as exc:
            if handle.cancelled:
                raise InferenceCancelled() from exc
            raise InferenceError(f'generation service unavailable: {exc}') from exc


@lru_cache
def get_inference_client() -> InferenceClient:
    return InferenceClient(
        base_url=settings.INFERENCE_BASE_URL,
        model=settings.INFERENCE_MODEL,
        timeout=settings.INFERENCE_TIMEOUT,
        connect_timeout=settings.INFERENCE_CONNECT_TIMEOUT,
    )


def reset_inference_client() -> None:
    get_inference_client.cache_clear()
