"""Library for reading and changing cluster state with `kubectl`.

The bootstrap workflow talks to the cluster only through a `ClusterClient`.
`Kubectl` is the implementation backed by the `kubectl` binary:

```python
from flux_bootstrap.kubectl import Kubectl
from flux_bootstrap.manifest import NamedResource

client = Kubectl(context="kind-dev")
doc = await client.get(NamedResource("Secret", "flux-system", "flux-system"))
```

Reads distinguish an object that does not exist (`ObjectNotFoundError`) from
one the caller may not see (`PermissionDeniedError`) and from any other
failure talking to the cluster (`KubectlException`).
"""

from abc import ABC, abstractmethod
import datetime
import logging
from pathlib import Path
from typing import Any

import yaml

from .command import Command, run
from .config import format_duration
from .exceptions import (
    InstallException,
    KubectlException,
    ObjectNotFoundError,
    PermissionDeniedError,
)
from .manifest import GIT_REPOSITORY, KUSTOMIZE_KIND, SECRET_KIND, NamedResource

__all__ = [
    "ClusterClient",
    "Kubectl",
    "apply_install_manifests",
]

_LOGGER = logging.getLogger(__name__)

KUBECTL_BIN = "kubectl"

# Fully qualified so flux Kustomizations are never confused with other kinds
RESOURCE_NAMES = {
    GIT_REPOSITORY: "gitrepositories.source.toolkit.fluxcd.io",
    KUSTOMIZE_KIND: "kustomizations.kustomize.toolkit.fluxcd.io",
    SECRET_KIND: "secrets",
}

_NOT_FOUND = "(NotFound)"
# The kind itself is unknown, e.g. before the toolkit CRDs are installed
_UNKNOWN_KIND = ("doesn't have a resource type", "no matches for kind")
_FORBIDDEN = "(Forbidden)"

# Extra time given to kubectl beyond its own --timeout before it is killed
_ROLLOUT_GRACE = 30.0


class ClusterClient(ABC):
    """Access to the objects of the target cluster."""

    @abstractmethod
    async def get(self, resource: NamedResource) -> dict[str, Any]:
        """Return the current object from the cluster.

        Raises `ObjectNotFoundError` if the object does not exist, including
        when the cluster does not know its kind yet.
        """

    @abstractmethod
    async def upsert(self, doc: dict[str, Any]) -> None:
        """Create the object or replace it if it already exists."""

    @abstractmethod
    async def apply_manifest(self, path: Path) -> None:
        """Apply all objects in a single manifest file."""

    @abstractmethod
    async def apply_kustomization(self, path: Path) -> None:
        """Apply a kustomization directory."""

    @abstractmethod
    async def rollout_status(
        self, deployment: str, namespace: str, timeout: datetime.timedelta
    ) -> None:
        """Wait for a deployment to finish rolling out."""


class Kubectl(ClusterClient):
    """A `ClusterClient` that runs `kubectl` commands."""

    def __init__(
        self, kubeconfig: Path | None = None, context: str | None = None
    ) -> None:
        """Initialize Kubectl."""
        self._kubeconfig = kubeconfig
        self._context = context

    def _command(self, args: list[str], timeout: float | None = None) -> Command:
        cmd = [KUBECTL_BIN]
        if self._kubeconfig:
            cmd.extend(["--kubeconfig", str(self._kubeconfig)])
        if self._context:
            cmd.extend(["--context", self._context])
        cmd.extend(args)
        if timeout is None:
            return Command(cmd, exc=KubectlException)
        return Command(cmd, exc=KubectlException, timeout=timeout)

    async def get(self, resource: NamedResource) -> dict[str, Any]:
        """Return the current object from the cluster."""
        kind = RESOURCE_NAMES.get(resource.kind, resource.kind.lower())
        args = ["get", kind, resource.name, "-n", resource.namespace, "-o", "yaml"]
        try:
            out = await run(self._command(args))
        except KubectlException as err:
            message = str(err)
            if _NOT_FOUND in message or any(m in message for m in _UNKNOWN_KIND):
                raise ObjectNotFoundError(f"{resource} not found") from err
            if _FORBIDDEN in message:
                raise PermissionDeniedError(f"Access to {resource} denied") from err
            raise
        try:
            doc = yaml.safe_load(out)
        except yaml.YAMLError as err:
            raise KubectlException(f"Unable to parse {resource}: {err}") from err
        if not isinstance(doc, dict):
            raise KubectlException(f"Unexpected output reading {resource}: {out}")
        return doc

    async def upsert(self, doc: dict[str, Any]) -> None:
        """Create or replace the object with `kubectl apply`."""
        content = yaml.dump(doc, sort_keys=False).encode("utf-8")
        await run(self._command(["apply", "-f", "-"]), stdin=content)

    async def apply_manifest(self, path: Path) -> None:
        """Run `kubectl apply -f` on a manifest file."""
        await run(self._command(["apply", "-f", str(path)]))

    async def apply_kustomization(self, path: Path) -> None:
        """Run `kubectl apply -k` on a kustomization directory."""
        await run(self._command(["apply", "-k", str(path)]))

    async def rollout_status(
        self, deployment: str, namespace: str, timeout: datetime.timedelta
    ) -> None:
        """Run `kubectl rollout status` for a deployment."""
        args = [
            "-n",
            namespace,
            "rollout",
            "status",
            "deployment",
            deployment,
            "--timeout",
            format_duration(timeout),
        ]
        await run(
            self._command(args, timeout=timeout.total_seconds() + _ROLLOUT_GRACE)
        )


async def apply_install_manifests(
    client: ClusterClient,
    manifest_path: Path,
    components: list[str] | tuple[str, ...],
    namespace: str,
    timeout: datetime.timedelta,
) -> None:
    """Apply the install manifest and wait for every component to roll out.

    Any failure is reported as a generic `InstallException`; the kubectl
    error is logged and kept as the exception cause.
    """
    try:
        await client.apply_manifest(manifest_path)
    except KubectlException as err:
        _LOGGER.error("Applying %s failed: %s", manifest_path, err)
        raise InstallException("install failed") from err

    for deployment in components:
        _LOGGER.debug("Waiting for deployment %s/%s", namespace, deployment)
        try:
            await client.rollout_status(deployment, namespace, timeout)
        except KubectlException as err:
            _LOGGER.error("Rollout of %s/%s failed: %s", namespace, deployment, err)
            raise InstallException("install failed") from err
