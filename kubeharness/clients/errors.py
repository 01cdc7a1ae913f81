"""
Errors of the K8s API, as classified for the harness.

The harness treats a few API failures specially: the absence of an object
(in the deletions and the waits), the existing object (in `ensure_created`),
and the outdated resource version (in the conflict-safe updates). HTTP 409
is used by K8s for both of the latter, so the classification relies on
the ``reason`` of the K8s ``Status`` in the response body, not on the HTTP
status alone.

The HTTP library's own errors are chained as the causes, but never leak
as the base classes: the tests catch the harness's classes only.
The connectivity & SSL errors are not the K8s API's domain and are escalated
from the HTTP library as they are.
"""
import collections.abc
import json
from typing import Any, Collection, Mapping, Optional, Tuple, Type

import aiohttp
from typing_extensions import Literal, TypedDict


class RawStatusDetails(TypedDict, total=False):
    name: str
    kind: str
    group: str
    uid: str
    causes: Collection[Mapping[str, str]]
    retryAfterSeconds: int


# https://kubernetes.io/docs/reference/kubernetes-api/common-definitions/status/
class RawStatus(TypedDict, total=False):
    apiVersion: str
    kind: Literal["Status"]
    status: Literal["Success", "Failure"]
    code: int
    reason: str
    message: str
    details: RawStatusDetails


class APIError(Exception):
    """ A failed K8s API call; the ``Status`` is kept only if it was provided. """

    def __init__(self, payload: Optional[RawStatus], *, status: int) -> None:
        super().__init__(payload.get('message') if payload else None, payload)
        self._status = status
        self._payload: RawStatus = payload or {}

    def __str__(self) -> str:
        explanation = self.message or self.reason or 'no details'
        return f"({self.status}) {explanation}"

    @property
    def status(self) -> int:
        """ The HTTP status of the response. """
        return self._status

    @property
    def code(self) -> Optional[int]:
        """ The status code as reported in the body (usually the same). """
        return self._payload.get('code')

    @property
    def reason(self) -> Optional[str]:
        return self._payload.get('reason')

    @property
    def message(self) -> Optional[str]:
        return self._payload.get('message')

    @property
    def details(self) -> Optional[RawStatusDetails]:
        return self._payload.get('details')


class APIClientError(APIError):
    pass


class APIServerError(APIError):
    pass


class APIUnauthorizedError(APIClientError):
    pass


class APIForbiddenError(APIClientError):
    pass


class APINotFoundError(APIClientError):
    pass


class APIConflictError(APIClientError):
    pass


class APIAlreadyExistsError(APIClientError):
    pass


# Checked in order; ``None`` as a reason matches any reason.
_SPECIFIC_ERRORS: Collection[Tuple[int, Optional[str], Type[APIError]]] = [
    (401, None, APIUnauthorizedError),
    (403, None, APIForbiddenError),
    (404, None, APINotFoundError),
    (409, 'AlreadyExists', APIAlreadyExistsError),
    (409, None, APIConflictError),
]


def select_error_class(status: int, reason: Optional[str]) -> Type[APIError]:
    for known_status, known_reason, cls in _SPECIFIC_ERRORS:
        if status == known_status and known_reason in (None, reason):
            return cls
    if 400 <= status < 500:
        return APIClientError
    elif 500 <= status < 600:
        return APIServerError
    else:
        return APIError


async def _read_status(response: aiohttp.ClientResponse) -> Optional[RawStatus]:
    try:
        payload: Any = await response.json()
    except (json.JSONDecodeError, aiohttp.ContentTypeError, aiohttp.ClientConnectionError):
        return None

    # Anything but the Status can contain the objects' data (e.g. secrets). Hide it.
    if isinstance(payload, collections.abc.Mapping) and payload.get('kind') == 'Status':
        return payload  # type: ignore
    return None


async def check_response(response: aiohttp.ClientResponse) -> None:
    """
    Raise the harness's error with the K8s ``Status`` if the response is an error.

    The body is read before `raise_for_status` releases the response.
    The successful responses are left intact, so that they can be parsed.
    """
    if response.status < 400:
        return

    payload = await _read_status(response)
    cls = select_error_class(response.status, payload.get('reason') if payload else None)
    try:
        response.raise_for_status()
    except aiohttp.ClientResponseError as e:
        raise cls(payload, status=response.status) from e
