"""
Raw HTTP requests to the K8s API, with the responses checked for errors.

Only the reads are repeated on the server-side and connectivity errors.
The writes are sent exactly once and their errors are escalated to the caller:
a write that has failed with HTTP 5xx or a dropped connection could have been
applied by the server anyway, and its repetition would then fail for no
visible reason (e.g. as AlreadyExists on creation).
"""
import asyncio
import json
from typing import Any, AsyncIterator, List, Optional

import aiohttp

from kubeharness.clients import auth, errors
from kubeharness.helpers import typedefs
from kubeharness.structs import configuration

REPEATABLE_METHODS = frozenset({'get'})

# The errors where the request might succeed if simply repeated.
TRANSIENT_ERRORS = (aiohttp.ClientConnectionError, errors.APIServerError, asyncio.TimeoutError)


async def request(
        method: str,
        url: str,  # relative to the server/api root.
        *,
        context: auth.APIContext,
        settings: configuration.HarnessSettings,
        payload: Optional[object] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        logger: typedefs.Logger,
) -> aiohttp.ClientResponse:
    if '://' not in url:
        url = f"{context.server.rstrip('/')}/{url.lstrip('/')}"
    if timeout is None:
        timeout = aiohttp.ClientTimeout(total=settings.networking.request_timeout,
                                        sock_connect=settings.networking.connect_timeout)

    pauses: List[float] = []
    if method.lower() in REPEATABLE_METHODS:
        pauses.extend(settings.networking.error_backoffs)

    what = f"{method.upper()} {url}"
    attempt = 1
    while True:
        try:
            response = await context.session.request(method, url, json=payload, timeout=timeout)
            await errors.check_response(response)
        except TRANSIENT_ERRORS as e:
            if not pauses:
                logger.error(f"{what} has failed in {attempt} attempt(s): {e!r}")
                raise
            pause = pauses.pop(0)
            logger.warning(f"{what} has failed; repeating in {pause}s: {e!r}")
            await asyncio.sleep(pause)
            attempt += 1
        else:
            return response


async def _call(
        method: str,
        url: str,
        *,
        context: auth.APIContext,
        settings: configuration.HarnessSettings,
        payload: Optional[object] = None,
        logger: typedefs.Logger,
) -> Any:
    response = await request(method, url, payload=payload,
                             context=context, settings=settings, logger=logger)
    async with response:
        return await response.json()


async def get(
        url: str,
        *,
        context: auth.APIContext,
        settings: configuration.HarnessSettings,
        logger: typedefs.Logger,
) -> Any:
    return await _call('get', url, context=context, settings=settings, logger=logger)


async def post(
        url: str,
        *,
        context: auth.APIContext,
        settings: configuration.HarnessSettings,
        payload: object,
        logger: typedefs.Logger,
) -> Any:
    return await _call('post', url, payload=payload,
                       context=context, settings=settings, logger=logger)


async def put(
        url: str,
        *,
        context: auth.APIContext,
        settings: configuration.HarnessSettings,
        payload: object,
        logger: typedefs.Logger,
) -> Any:
    return await _call('put', url, payload=payload,
                       context=context, settings=settings, logger=logger)


async def delete(
        url: str,
        *,
        context: auth.APIContext,
        settings: configuration.HarnessSettings,
        payload: Optional[object] = None,
        logger: typedefs.Logger,
) -> Any:
    return await _call('delete', url, payload=payload,
                       context=context, settings=settings, logger=logger)


async def stream(
        url: str,
        *,
        context: auth.APIContext,
        settings: configuration.HarnessSettings,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        logger: typedefs.Logger,
) -> AsyncIterator[Any]:
    """ Yield the decoded JSON lines of a long-running GET (e.g. a watch). """
    response = await request('get', url, timeout=timeout,
                             context=context, settings=settings, logger=logger)
    async with response:
        async for line in iter_jsonlines(response.content):
            yield json.loads(line.decode('utf-8'))


async def iter_jsonlines(
        content: aiohttp.StreamReader,
        chunk_size: int = 1024 * 1024,
) -> AsyncIterator[bytes]:
    """
    Split the response's content into the non-empty lines.

    The aiohttp's own line iteration (``async for line in content``) fails
    on lines longer than its buffer limit (128 KB), while the objects' bodies
    (e.g. of secrets or configmaps) can take megabytes. So, the chunks are
    accumulated until the end of line, whatever long the line is.
    """
    tail = b''
    async for chunk in content.iter_chunked(chunk_size):
        *lines, tail = (tail + chunk).split(b'\n')
        for line in lines:
            if line:
                yield line
    if tail:
        yield tail
