from kubeharness.clients import api, auth
from kubeharness.helpers import typedefs
from kubeharness.structs import bodies, configuration, references


async def create_obj(
        *,
        context: auth.APIContext,
        settings: configuration.HarnessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        body: bodies.RawBody,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Create an object and return its body as stored by the server.
    """
    created_body: bodies.RawBody = await api.post(
        url=resource.get_url(namespace=namespace),
        payload=body,
        context=context,
        settings=settings,
        logger=logger,
    )
    return created_body
