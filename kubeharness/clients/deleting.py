from typing import Any, Dict, Optional

from kubeharness.clients import api, auth
from kubeharness.helpers import typedefs
from kubeharness.structs import configuration, references


async def delete_obj(
        *,
        context: auth.APIContext,
        settings: configuration.HarnessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        propagation_policy: Optional[str] = 'Foreground',
        logger: typedefs.Logger,
) -> None:
    """
    Request the deletion of an object.

    The object can remain in the cluster after the call for a while:
    e.g. while its finalizers are being processed, or its dependents are
    being deleted (with the foreground propagation). The deletion is complete
    only when the object cannot be found anymore.
    """
    payload: Dict[str, Any] = {'apiVersion': 'v1', 'kind': 'DeleteOptions'}
    if propagation_policy is not None:
        payload['propagationPolicy'] = propagation_policy
    await api.delete(
        url=resource.get_url(namespace=namespace, name=name),
        payload=payload,
        context=context,
        settings=settings,
        logger=logger,
    )
