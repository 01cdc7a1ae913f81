import dataclasses
import urllib.parse
from typing import FrozenSet, Iterator, List, Mapping, NewType, Optional

# A specific really existing addressable namespace (at least, the one assumed to be so).
NamespaceName = NewType('NamespaceName', str)

# A namespace reference usable in the API calls. `None` means cluster-wide API calls.
Namespace = Optional[NamespaceName]


@dataclasses.dataclass(frozen=True, eq=False, repr=False)
class Resource:
    """
    A reference to a very specific custom or built-in resource kind.

    It is used to form the K8s API URLs. Generally, K8s API only needs
    an API group, an API version, and a plural name of the resource.
    The kind is remembered to fill the bodies of the objects being created,
    and for logging.
    """

    group: str
    """
    The resource's API group; e.g. ``"example.com"``, ``"apps"``, ``"batch"``.
    For Core v1 API resources, an empty string: ``""``.
    """

    version: str
    """
    The resource's API version; e.g. ``"v1"``, ``"v1beta1"``, etc.
    """

    plural: str
    """
    The resource's plural name; e.g. ``"pods"``, ``"kopfexamples"``.
    It is used as an API endpoint, together with API group & version.
    """

    kind: Optional[str] = None
    """
    The resource's kind (as in YAML files); e.g. ``"Pod"``, ``"KopfExample"``.
    """

    namespaced: bool = True
    """
    Whether the resource is namespaced (``True``) or cluster-scoped (``False``).
    """

    subresources: FrozenSet[str] = frozenset()
    """
    The resource's subresources, if defined; e.g. ``{"status", "scale"}``.
    """

    def __hash__(self) -> int:
        return hash((self.group, self.version, self.plural))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Resource):
            self_tuple = (self.group, self.version, self.plural)
            other_tuple = (other.group, other.version, other.plural)
            return self_tuple == other_tuple
        else:
            return NotImplemented

    def __repr__(self) -> str:
        return f'{self.plural}.{self.version}.{self.group}'.strip('.')

    # Mostly for tests: to unpack into the positional args.
    def __iter__(self) -> Iterator[str]:
        return iter((self.group, self.version, self.plural))

    @property
    def api_version(self) -> str:
        return f'{self.group}/{self.version}' if self.group else self.version

    def get_url(
            self,
            *,
            server: Optional[str] = None,
            namespace: Namespace = None,
            name: Optional[str] = None,
            subresource: Optional[str] = None,
            params: Optional[Mapping[str, str]] = None,
    ) -> str:
        """
        Build a URL to be used with K8s API.

        If the namespace is not set, a cluster-wide URL is returned.
        For cluster-scoped resources, the namespace is ignored.

        If the name is not set, the URL for the resource list is returned.
        Otherwise (if set), the URL for the individual resource is returned.

        Params go to the query parameters (``?param1=value1&param2=value2...``).
        """
        if subresource is not None and name is None:
            raise ValueError("Subresources can be used only with specific resources by their name.")
        if not self.namespaced and namespace is not None:
            raise ValueError("Specific namespaces are not supported for cluster-scoped resources.")
        if self.namespaced and namespace is None and name is not None:
            raise ValueError("Specific namespaces are required for specific namespaced resources.")

        parts: List[Optional[str]] = [
            '/api' if self.group == '' and self.version == 'v1' else '/apis',
            self.group,
            self.version,
            'namespaces' if self.namespaced and namespace is not None else None,
            namespace if self.namespaced and namespace is not None else None,
            self.plural,
            name,
            subresource,
        ]

        query = urllib.parse.urlencode(params, encoding='utf-8') if params else ''
        path = '/'.join([part for part in parts if part])
        url = path + ('?' if query else '') + query
        return url if server is None else server.rstrip('/') + '/' + url.lstrip('/')


# Some well-known resources, mostly for tests and the CLI shortcuts.
NAMESPACES = Resource('', 'v1', 'namespaces', kind='Namespace', namespaced=False)
CONFIGMAPS = Resource('', 'v1', 'configmaps', kind='ConfigMap', namespaced=True)
SECRETS = Resource('', 'v1', 'secrets', kind='Secret', namespaced=True)
PODS = Resource('', 'v1', 'pods', kind='Pod', namespaced=True, subresources=frozenset({'status'}))
DEPLOYMENTS = Resource('apps', 'v1', 'deployments', kind='Deployment', namespaced=True,
                       subresources=frozenset({'status', 'scale'}))

WELL_KNOWN: Mapping[str, Resource] = {
    name: resource
    for resource in [NAMESPACES, CONFIGMAPS, SECRETS, PODS, DEPLOYMENTS]
    for name in [resource.plural, (resource.kind or '').lower()]
}


def parse_resource(
        spec: str,
        *,
        kind: Optional[str] = None,
        namespaced: bool = True,
) -> Resource:
    """
    Parse a resource from a CLI-like spec.

    Either a well-known name (``pods``, ``deployment``, etc), or a fully
    qualified ``plural.version.group`` (``kopfexamples.v1.kopf.dev``),
    or ``plural.version`` for the core API (``services.v1``).
    """
    if spec in WELL_KNOWN:
        resource = WELL_KNOWN[spec]
        return dataclasses.replace(resource, kind=kind) if kind else resource

    parts: List[str] = spec.split('.', 2)
    if len(parts) < 2 or not all(parts):
        raise ValueError(f"Unrecognised resource: {spec!r}. "
                         f"Use a well-known name or plural.version.group.")
    plural, version = parts[0], parts[1]
    group = parts[2] if len(parts) > 2 else ''
    return Resource(group, version, plural, kind=kind, namespaced=namespaced)
