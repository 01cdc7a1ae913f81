from kubeharness.clients import api, auth
from kubeharness.helpers import typedefs
from kubeharness.structs import bodies, configuration, references


async def replace_obj(
        *,
        context: auth.APIContext,
        settings: configuration.HarnessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        body: bodies.RawBody,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Replace the whole object with the new body (``PUT``, not ``PATCH``).

    The body must carry the resource version it is based on. If the object
    was modified since that version was read, the server rejects the update
    with HTTP 409 Conflict: this is the optimistic concurrency of K8s API.
    """
    replaced_body: bodies.RawBody = await api.put(
        url=resource.get_url(namespace=namespace, name=name),
        payload=body,
        context=context,
        settings=settings,
        logger=logger,
    )
    return replaced_body
