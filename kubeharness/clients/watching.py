"""
Watching the individual objects for changes.

The harness does not need the watch-streams for the data: every check
of a condition fetches the fresh state of the object anyway. The streams
are only used as a signal that something has changed, so that the waits
re-check their conditions earlier than their polling intervals.

This is why the streams are simplified: no initial listing, no bookmarks,
no continuation across the "410 Gone" errors (the stream just ends, and is
restarted by the consumer from the newest version).
"""
import asyncio
from typing import AsyncIterator, Dict, Optional, cast

import aiohttp

from kubeharness.clients import api, auth
from kubeharness.helpers import typedefs
from kubeharness.structs import bodies, configuration, references


class WatchingError(Exception):
    """
    Raised when an unexpected error happens in the watch-stream API.
    """


async def watch_objs(
        *,
        context: auth.APIContext,
        settings: configuration.HarnessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: Optional[str] = None,
        since: Optional[str] = None,
        logger: typedefs.Logger,
) -> AsyncIterator[bodies.RawEvent]:
    """
    Watch objects of a specific resource type, optionally by name.

    The stream ends when the server closes it (by its timeout),
    or when the resource version is too old ("410 Gone").
    """
    params: Dict[str, str] = {}
    params['watch'] = 'true'
    if name is not None:
        params['fieldSelector'] = f'metadata.name={name}'
    if since is not None:
        params['resourceVersion'] = since
    if settings.watching.server_timeout is not None:
        params['timeoutSeconds'] = str(int(settings.watching.server_timeout))

    timeout = aiohttp.ClientTimeout(
        total=settings.watching.client_timeout,
        sock_connect=settings.networking.connect_timeout,
    )
    url = resource.get_url(namespace=namespace if resource.namespaced else None, params=params)

    try:
        async for raw_input in api.stream(
            url=url,
            timeout=timeout,
            context=context,
            settings=settings,
            logger=logger,
        ):
            raw_type = raw_input.get('type')
            raw_object = raw_input.get('object')

            # "410 Gone" is for the "resource version too old" error, we must restart watching.
            if raw_type == 'ERROR' and (raw_object or {}).get('code') == 410:
                logger.debug(f"Restarting the watch-stream for {resource}: version is too old.")
                return

            if raw_type == 'ERROR':
                raise WatchingError(f"Error in the watch-stream: {raw_object}")

            if raw_type not in ['ADDED', 'MODIFIED', 'DELETED']:
                continue

            yield cast(bodies.RawEvent, raw_input)

    except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, asyncio.TimeoutError):
        pass
