"""
The main harness module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the harness's top-level interface,
# as it is seen by the tests. So, we export the individual functions.

from kubeharness.helpers.typedefs import (
    Logger,
)
from kubeharness.helpers.versions import (
    version as __version__,
)
from kubeharness.errors import (
    HarnessError,
    IdentityError,
    ConditionValidationError,
    ConditionMissingError,
    ConditionAmbiguousError,
    OperationError,
    WaitError,
    WaitTimeoutError,
    WaitCancelledError,
    CleanupError,
)
from kubeharness.clients.errors import (
    APIError,
    APIClientError,
    APIServerError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    APIConflictError,
    APIAlreadyExistsError,
)
from kubeharness.clients.base import (
    ResourceClient,
)
from kubeharness.clients.rest import (
    APIClient,
)
from kubeharness.structs.bodies import (
    RawBody,
    RawCondition,
    RawEvent,
    RawEventType,
    Trackable,
    Object,
)
from kubeharness.structs.conditions import (
    ConditionPredicate,
    get_condition,
    get_condition_status,
    condition_is,
    is_ready,
)
from kubeharness.structs.configuration import (
    HarnessSettings,
    CleanupSettings,
    CleanupStrategy,
    WaitingSettings,
    UpdatingSettings,
    NetworkingSettings,
    WatchingSettings,
)
from kubeharness.structs.credentials import (
    LoginError,
    ConnectionInfo,
)
from kubeharness.structs.identities import (
    Identity,
    identify,
)
from kubeharness.structs.references import (
    Resource,
    NAMESPACES,
    CONFIGMAPS,
    SECRETS,
    PODS,
    DEPLOYMENTS,
    parse_resource,
)
from kubeharness.engines.loggers import (
    LogFormat,
    ObjectLogger,
    make_logger,
    close_logger,
    log_object,
)
from kubeharness.engines.waiting import (
    WaitOptions,
    WaitState,
    transition,
    wait_until_found,
    wait_until_not_found,
    wait_until_condition,
    wait_until_ready,
)
from kubeharness.engines.updating import (
    Mutation,
    update_object,
)
from kubeharness.engines.tracking import (
    Outcome,
    Tracker,
)

__all__ = [
    'Logger',
    'HarnessError',
    'IdentityError',
    'ConditionValidationError',
    'ConditionMissingError',
    'ConditionAmbiguousError',
    'OperationError',
    'WaitError',
    'WaitTimeoutError',
    'WaitCancelledError',
    'CleanupError',
    'APIError',
    'APIClientError',
    'APIServerError',
    'APIUnauthorizedError',
    'APIForbiddenError',
    'APINotFoundError',
    'APIConflictError',
    'APIAlreadyExistsError',
    'ResourceClient',
    'APIClient',
    'RawBody',
    'RawCondition',
    'RawEvent',
    'RawEventType',
    'Trackable',
    'Object',
    'ConditionPredicate',
    'get_condition',
    'get_condition_status',
    'condition_is',
    'is_ready',
    'HarnessSettings',
    'CleanupSettings',
    'CleanupStrategy',
    'WaitingSettings',
    'UpdatingSettings',
    'NetworkingSettings',
    'WatchingSettings',
    'LoginError',
    'ConnectionInfo',
    'Identity',
    'identify',
    'Resource',
    'NAMESPACES',
    'CONFIGMAPS',
    'SECRETS',
    'PODS',
    'DEPLOYMENTS',
    'parse_resource',
    'LogFormat',
    'ObjectLogger',
    'make_logger',
    'close_logger',
    'log_object',
    'WaitOptions',
    'WaitState',
    'transition',
    'wait_until_found',
    'wait_until_not_found',
    'wait_until_condition',
    'wait_until_ready',
    'Mutation',
    'update_object',
    'Outcome',
    'Tracker',
]
