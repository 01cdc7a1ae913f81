"""
The connection info of the API clients.

The harness connects to one cluster with one set of credentials per client,
as found in the kubeconfig or in the pod's service account. No credential
rotation or re-authentication: a test session is short enough for that.

.. seealso::
    :mod:`kubeharness.clients.logins` (where it comes from) and
    :mod:`kubeharness.clients.auth` (how it is used).
"""
import dataclasses
from typing import Optional, Union

# The embedded certificates & keys: either PEM or base64-encoded PEM.
PEMData = Union[str, bytes]


class LoginError(Exception):
    """ Raised when there are no usable credentials for the API. """


@dataclasses.dataclass(frozen=True)
class ConnectionInfo:
    """
    Where the API is, and how to authenticate there.

    Any combination of the authentication methods can be used: the client
    certificates, the basic auth, the tokens (with an optional scheme,
    ``Bearer`` if not specified).
    """

    server: str
    """ The API's base URL, e.g. ``https://localhost:6443``. """

    ca_path: Optional[str] = None
    ca_data: Optional[PEMData] = None
    insecure: Optional[bool] = None
    """ Skip the verification of the server's certificate (the CA is ignored). """

    certificate_path: Optional[str] = None
    certificate_data: Optional[PEMData] = None
    private_key_path: Optional[str] = None
    private_key_data: Optional[PEMData] = None

    username: Optional[str] = None
    password: Optional[str] = None

    scheme: Optional[str] = None
    token: Optional[str] = None

    default_namespace: Optional[str] = None
    """ The namespace for the namespaced objects that have none specified. """
