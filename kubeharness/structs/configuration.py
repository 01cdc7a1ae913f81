"""
All configuration flags, options, settings to fine-tune the harness.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

The settings are chosen once per test session (or per tracker)
and are not expected to change while the tracker is in use.
Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults).
"""
import dataclasses
import enum
from typing import Optional, Sequence


class CleanupStrategy(str, enum.Enum):
    """ When to delete the objects created by a test. """
    ALWAYS = 'always'
    ON_SUCCESS = 'on-success'
    NEVER = 'never'


@dataclasses.dataclass
class CleanupSettings:

    strategy: CleanupStrategy = CleanupStrategy.ALWAYS
    """
    Whether to delete the tracked objects after the test.

    ``always`` deletes them regardless of the test outcome.
    ``on-success`` keeps the objects of the failed tests for investigation.
    ``never`` keeps everything (e.g. for the disposable clusters).
    """

    timeout: Optional[float] = 60
    """
    How long to wait for every individual object to disappear after deletion
    (e.g. while its finalizers are being processed by the controllers).
    """


@dataclasses.dataclass
class WaitingSettings:

    poll_interval: float = 1.0
    """
    How long to sleep between the attempts to fetch the object's fresh state.

    If the client supports watching, the sleep is interrupted by any change
    of the object, so that the condition is re-checked earlier.
    """

    timeout: Optional[float] = 60
    """
    How long to wait for the condition by default, unless specified per call.
    ``None`` means waiting forever (until cancelled).
    """

    watching: bool = True
    """
    Should the waits watch the object to get notified of its changes early?
    If the client does not support watching, it is polling only.
    """


@dataclasses.dataclass
class UpdatingSettings:

    poll_interval: float = 1.0
    """
    How long to sleep after a conflicting update before trying again.
    """

    timeout: Optional[float] = 30
    """
    For how long the updates are retried on conflicts before giving up.
    """


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: Optional[float] = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for each request to the K8s API, in seconds.
    """

    connect_timeout: Optional[float] = None
    """
    A timeout for establishing the TCP connection to the K8s API, in seconds.
    """

    error_backoffs: Sequence[float] = (1, 1, 2, 3, 5, 8)
    """
    Pauses in seconds between the repeated reads (GET, including the watches)
    when the K8s API responds with HTTP 5xx or cannot be connected.

    The writes (create, replace, delete) are sent exactly once: the server could
    have applied a failed write anyway. The client errors (HTTP 4xx) are never
    repeated. An empty sequence disables the repeated reads too.
    """


@dataclasses.dataclass
class WatchingSettings:

    server_timeout: Optional[float] = 60
    """
    The maximum duration of one watch request as asked from the server.
    """

    client_timeout: Optional[float] = None
    """
    An HTTP/HTTPS session timeout to use in watch requests.
    """


@dataclasses.dataclass
class HarnessSettings:
    cleanup: CleanupSettings = dataclasses.field(default_factory=CleanupSettings)
    waiting: WaitingSettings = dataclasses.field(default_factory=WaitingSettings)
    updating: UpdatingSettings = dataclasses.field(default_factory=UpdatingSettings)
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    watching: WatchingSettings = dataclasses.field(default_factory=WatchingSettings)
