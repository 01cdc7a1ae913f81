"""
All the structures coming from/to the Kubernetes API.

The raw bodies are plain JSON-decoded dicts, typed per-field with `TypedDict`
for stricter type-checking of the fields used by the harness. The tests can
use arbitrary fields at runtime, which are not declared here.

The harness does not work with raw dicts directly, but with `Object`:
a raw body bound to the resource it belongs to. The binding is needed
to build the API URLs, which cannot be reliably guessed from the kind.

Every trackable object exposes its kind, namespace, and name explicitly
(see `Trackable`). The harness never introspects the objects to guess
their identities; anything that implements the protocol can be tracked.
"""
import copy
import json
from typing import Any, Dict, List, Mapping, MutableMapping, Optional

from typing_extensions import Literal, Protocol, TypedDict

from kubeharness.structs import references

Labels = Mapping[str, str]
Annotations = Mapping[str, str]

RawEventType = Literal['ADDED', 'MODIFIED', 'DELETED', 'BOOKMARK', 'ERROR']


class RawMeta(TypedDict, total=False):
    uid: str
    name: str
    namespace: str
    labels: Labels
    annotations: Annotations
    finalizers: List[str]
    resourceVersion: str
    deletionTimestamp: str
    creationTimestamp: str


class RawCondition(TypedDict, total=False):
    type: str
    status: str
    reason: str
    message: str
    lastTransitionTime: str
    observedGeneration: int


class RawBody(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: RawMeta
    spec: Mapping[str, Any]
    status: Mapping[str, Any]


class RawEvent(TypedDict, total=True):
    type: RawEventType
    object: RawBody


class Trackable(Protocol):
    """
    The capability of an object to be identified for tracking.

    The kind and the name are required for a proper identity,
    the namespace is ``None`` for cluster-scoped objects.
    """

    @property
    def kind(self) -> Optional[str]: ...

    @property
    def namespace(self) -> Optional[str]: ...

    @property
    def name(self) -> Optional[str]: ...


class Object:
    """
    A raw body of an object, bound to its resource.

    The body is owned by the object and is refreshed in place by the client
    calls (create, get, update) from the server responses. This way, the test
    code that holds a reference to the object always sees the latest observed
    state after the waiting/updating routines, without re-assigning it.

    The harness itself never modifies the spec; only the tests' own mutation
    functions do (see `updating.update_object`).
    """

    def __init__(
            self,
            resource: references.Resource,
            body: Optional[Mapping[str, Any]] = None,
            *,
            name: Optional[str] = None,
            namespace: Optional[str] = None,
    ) -> None:
        super().__init__()
        raw: Dict[str, Any] = copy.deepcopy(dict(body)) if body is not None else {}
        raw.setdefault('apiVersion', resource.api_version)
        if resource.kind is not None:
            raw.setdefault('kind', resource.kind)
        meta = raw.setdefault('metadata', {})
        if name is not None:
            meta.setdefault('name', name)
        if namespace is not None and resource.namespaced:
            meta.setdefault('namespace', namespace)
        self.resource = resource
        self.raw: MutableMapping[str, Any] = raw

    def __repr__(self) -> str:
        clsname = self.__class__.__name__
        where = f'{self.namespace}/{self.name}' if self.namespace else f'{self.name}'
        return f'<{clsname} {self.kind} {where} rv={self.resource_version}>'

    @property
    def kind(self) -> Optional[str]:
        return self.raw.get('kind') or self.resource.kind

    @property
    def namespace(self) -> Optional[str]:
        return self.metadata.get('namespace') if self.resource.namespaced else None

    @property
    def name(self) -> Optional[str]:
        return self.metadata.get('name')

    @property
    def metadata(self) -> MutableMapping[str, Any]:
        return self.raw.setdefault('metadata', {})

    @property
    def spec(self) -> MutableMapping[str, Any]:
        return self.raw.setdefault('spec', {})

    @property
    def status(self) -> Mapping[str, Any]:
        return self.raw.get('status') or {}

    @property
    def resource_version(self) -> Optional[str]:
        return self.metadata.get('resourceVersion')

    @property
    def conditions(self) -> List[RawCondition]:
        return list(self.status.get('conditions') or [])

    def refresh(self, body: Mapping[str, Any]) -> None:
        """ Replace the whole body with the newly observed one, in place. """
        fresh = copy.deepcopy(dict(body))
        self.raw.clear()
        self.raw.update(fresh)

    def copy(self) -> "Object":
        return Object(self.resource, self.raw)

    def as_json(self) -> str:
        return json.dumps(self.raw, indent=2, sort_keys=True, default=str)
