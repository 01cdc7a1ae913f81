"""
Identities of the tracked objects.

Two objects are the same tracked entity if and only if their identities
are equal, regardless of their bodies, versions, or Python object ids.
An identity is derived only from the explicit accessors of `Trackable`.
"""
import dataclasses
from typing import Optional

from kubeharness import errors
from kubeharness.structs import bodies


@dataclasses.dataclass(frozen=True)
class Identity:
    kind: str
    namespace: Optional[str]
    name: str

    def __str__(self) -> str:
        if self.namespace:
            return f'{self.kind} {self.namespace}/{self.name}'
        else:
            return f'{self.kind} {self.name}'


def identify(obj: bodies.Trackable) -> Identity:
    """
    Get a stable comparable identity of an object.

    Fails only if the kind or the name is absent; the namespace is optional
    (absent for the cluster-scoped objects).
    """
    kind = obj.kind
    name = obj.name
    namespace = obj.namespace or None
    if not kind:
        raise errors.IdentityError(f"The object has no kind: {obj!r}")
    if not name:
        raise errors.IdentityError(f"The object has no name: {obj!r}")
    return Identity(kind=kind, namespace=namespace, name=name)
