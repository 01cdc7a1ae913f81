from typing import List, Optional, Tuple

from kubeharness.clients import api, auth
from kubeharness.helpers import typedefs
from kubeharness.structs import bodies, configuration, references


async def read_obj(
        *,
        context: auth.APIContext,
        settings: configuration.HarnessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Read the fresh state of a single object; fail if it is absent.
    """
    body: bodies.RawBody = await api.get(
        url=resource.get_url(namespace=namespace, name=name),
        context=context,
        settings=settings,
        logger=logger,
    )
    return body


async def list_objs(
        *,
        context: auth.APIContext,
        settings: configuration.HarnessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        logger: typedefs.Logger,
) -> Tuple[List[bodies.RawBody], Optional[str]]:
    """
    List the objects of specific resource type.

    The cluster-scoped call is used if the namespace is not specified,
    or if the resource itself is cluster-scoped. Otherwise, the namespaced
    call is used.

    The listed items usually have no kind & apiVersion, only the list has them.
    They are restored from the list's ones, so that the items can be tracked.
    """
    rsp = await api.get(
        url=resource.get_url(namespace=namespace if resource.namespaced else None),
        context=context,
        settings=settings,
        logger=logger,
    )

    items: List[bodies.RawBody] = []
    resource_version = rsp.get('metadata', {}).get('resourceVersion', None)
    for item in rsp.get('items', []):
        if 'kind' in rsp:
            item.setdefault('kind', rsp['kind'][:-4] if rsp['kind'][-4:] == 'List' else rsp['kind'])
        if 'apiVersion' in rsp:
            item.setdefault('apiVersion', rsp['apiVersion'])
        items.append(item)

    return items, resource_version
