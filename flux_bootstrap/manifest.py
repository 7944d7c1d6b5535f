"""Typed representations of the cluster objects created during bootstrap.

The sync objects are built as dataclasses and serialized to the same YAML
that `kubectl apply` expects. The same classes parse objects read back from
the cluster, including the `status` the controllers report, which is never
serialized.
"""

from dataclasses import dataclass, field
from typing import Any

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
import yaml

from .exceptions import InputException

__all__ = [
    "NamedResource",
    "Condition",
    "GitRepository",
    "Kustomization",
    "Secret",
]


SOURCE_API_VERSION = "source.toolkit.fluxcd.io/v1beta1"
FLUXTOMIZE_API_VERSION = "kustomize.toolkit.fluxcd.io/v1beta1"
KUSTOMIZE_API_VERSION = "kustomize.config.k8s.io/v1beta1"
GIT_REPOSITORY = "GitRepository"
KUSTOMIZE_KIND = "Kustomization"
SECRET_KIND = "Secret"
READY_CONDITION = "Ready"


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    def yaml(self) -> str:
        """Return a YAML string representation of the object."""
        return yaml.dump(self.to_dict(), sort_keys=False, explicit_start=True)

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str
    name: str

    @property
    def namespaced_name(self) -> str:
        return f"{self.namespace}/{self.name}"

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


@dataclass(kw_only=True)
class ObjectMeta(BaseManifest):
    """Identity of a namespaced object."""

    name: str
    namespace: str


@dataclass(kw_only=True)
class Condition(BaseManifest):
    """A status condition reported by a controller."""

    type: str
    status: str
    """One of `True`, `False` or `Unknown`."""

    reason: str | None = None
    message: str | None = None


def find_condition(
    conditions: list[Condition] | None, condition_type: str
) -> Condition | None:
    """Return the condition of the given type, if reported."""
    for condition in conditions or ():
        if condition.type == condition_type:
            return condition
    return None


@dataclass(kw_only=True)
class GitRepositoryRef(BaseManifest):
    """The Git ref used for pull and checkout operations."""

    branch: str | None = None
    tag: str | None = None
    semver: str | None = None
    commit: str | None = None


@dataclass(kw_only=True)
class LocalObjectReference(BaseManifest):
    """A reference to an object in the same namespace."""

    name: str


@dataclass(kw_only=True)
class GitRepositorySpec(BaseManifest):
    """Where and how often the source controller pulls the repository."""

    url: str
    interval: str
    reference: GitRepositoryRef | None = field(
        default=None, metadata=field_options(alias="ref")
    )
    secret_ref: LocalObjectReference | None = field(
        default=None, metadata=field_options(alias="secretRef")
    )


@dataclass(kw_only=True)
class Artifact(BaseManifest):
    """The artifact produced by the last successful reconciliation."""

    revision: str | None = None
    url: str | None = None


@dataclass(kw_only=True)
class GitRepositoryStatus(BaseManifest):
    """Status reported by the source controller."""

    conditions: list[Condition] | None = None
    artifact: Artifact | None = None


@dataclass(kw_only=True)
class GitRepository(BaseManifest):
    """A Git repository polled by the source controller."""

    api_version: str = field(
        default=SOURCE_API_VERSION, metadata=field_options(alias="apiVersion")
    )
    kind: str = GIT_REPOSITORY
    metadata: ObjectMeta
    spec: GitRepositorySpec
    status: GitRepositoryStatus | None = field(
        default=None, metadata={"serialize": "omit"}
    )

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "GitRepository":
        """Parse a GitRepository read from the cluster."""
        _check_kind(doc, GIT_REPOSITORY)
        return cls.from_dict(doc)

    @property
    def conditions(self) -> list[Condition]:
        if self.status and self.status.conditions:
            return self.status.conditions
        return []


@dataclass(kw_only=True)
class CrossNamespaceSourceReference(BaseManifest):
    """A reference to the source a Kustomization applies from."""

    kind: str
    name: str
    namespace: str | None = None


@dataclass(kw_only=True)
class KustomizationSpec(BaseManifest):
    """What path to apply from the source and how."""

    interval: str
    path: str = ""
    prune: bool = False
    source_ref: CrossNamespaceSourceReference = field(
        metadata=field_options(alias="sourceRef")
    )
    validation: str | None = None


@dataclass(kw_only=True)
class KustomizationStatus(BaseManifest):
    """Status reported by the kustomize controller."""

    conditions: list[Condition] | None = None
    last_applied_revision: str | None = field(
        default=None, metadata=field_options(alias="lastAppliedRevision")
    )


@dataclass(kw_only=True)
class Kustomization(BaseManifest):
    """A flux Kustomization binding a source path to the cluster."""

    api_version: str = field(
        default=FLUXTOMIZE_API_VERSION, metadata=field_options(alias="apiVersion")
    )
    kind: str = KUSTOMIZE_KIND
    metadata: ObjectMeta
    spec: KustomizationSpec
    status: KustomizationStatus | None = field(
        default=None, metadata={"serialize": "omit"}
    )

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Kustomization":
        """Parse a Kustomization read from the cluster."""
        _check_kind(doc, KUSTOMIZE_KIND)
        return cls.from_dict(doc)

    @property
    def conditions(self) -> list[Condition]:
        if self.status and self.status.conditions:
            return self.status.conditions
        return []

    @property
    def last_applied_revision(self) -> str:
        """The last revision applied to the cluster, empty if never applied."""
        if self.status and self.status.last_applied_revision:
            return self.status.last_applied_revision
        return ""


@dataclass(kw_only=True)
class Secret(BaseManifest):
    """A Secret holding string data."""

    api_version: str = field(default="v1", metadata=field_options(alias="apiVersion"))
    kind: str = SECRET_KIND
    metadata: ObjectMeta
    string_data: dict[str, str] = field(
        default_factory=dict, metadata=field_options(alias="stringData")
    )


def _check_kind(doc: dict[str, Any], kind: str) -> None:
    """Assert that the object read from the cluster is the expected kind."""
    if doc.get("kind") != kind:
        raise InputException(f"Invalid object expected kind '{kind}': {doc}")
    if not doc.get("metadata", {}).get("name"):
        raise InputException(f"Invalid {kind} missing metadata.name: {doc}")
