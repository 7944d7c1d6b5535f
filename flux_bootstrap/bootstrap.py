"""The bootstrap workflow.

Bootstrapping installs the toolkit controllers and then points them at a Git
repository so the cluster manages itself from then on:

```python
from flux_bootstrap.bootstrap import GitTarget, bootstrap
from flux_bootstrap.config import BootstrapConfig
from flux_bootstrap.deploy_key import OpenSSHKeyProvider
from flux_bootstrap.install import FluxInstallRenderer
from flux_bootstrap.kubectl import Kubectl

result = await bootstrap(
    BootstrapConfig(),
    Kubectl(),
    GitTarget(url="ssh://git@github.com/example/fleet", path="clusters/prod"),
    renderer=FluxInstallRenderer(),
    key_provider=OpenSSHKeyProvider(),
)
```

Every step is safe to repeat. The install phase is skipped once the sync
Kustomization has applied a revision, and an existing deploy key Secret is
never regenerated since its public key may already be registered with the
Git host. A run that fails or is cancelled part way leaves the cluster as it
was at that point and can simply be run again.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
import datetime
import logging
from pathlib import Path
import tempfile

from . import poll
from .config import BootstrapConfig
from .context import step
from .deploy_key import KeyProvider, generate_deploy_key
from .exceptions import ObjectNotFoundError
from .install import ManifestRenderer, clean_target_path, generate_install_manifests
from .kubectl import ClusterClient, apply_install_manifests
from .manifest import KUSTOMIZE_KIND, SECRET_KIND, Kustomization, NamedResource
from .sync import generate_sync_manifests

__all__ = [
    "GitTarget",
    "BootstrapResult",
    "bootstrap",
    "should_install_manifests",
    "should_create_deploy_key",
    "apply_sync_manifests",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_SYNC_INTERVAL = datetime.timedelta(minutes=1)

DeployKeyCallback = Callable[[str], Awaitable[None]]


@dataclass(kw_only=True, frozen=True)
class GitTarget:
    """The repository and path the cluster is synced from."""

    url: str
    """SSH URL of the repository."""

    path: str
    """Path within the repository holding the cluster manifests."""

    interval: datetime.timedelta = field(default=DEFAULT_SYNC_INTERVAL)
    """How often the source controller polls the repository."""


@dataclass(kw_only=True, frozen=True)
class BootstrapResult:
    """What a bootstrap run changed."""

    installed: bool
    """True if the toolkit components were (re)installed."""

    public_key: str | None
    """The new deploy key, or None if an existing key was kept."""


async def should_install_manifests(client: ClusterClient, namespace: str) -> bool:
    """Return True unless the sync Kustomization has already applied a revision."""
    resource = NamedResource(kind=KUSTOMIZE_KIND, namespace=namespace, name=namespace)
    try:
        doc = await client.get(resource)
    except ObjectNotFoundError:
        return True
    return Kustomization.parse_doc(doc).last_applied_revision == ""


async def should_create_deploy_key(client: ClusterClient, namespace: str) -> bool:
    """Return True if the deploy key Secret does not exist."""
    resource = NamedResource(kind=SECRET_KIND, namespace=namespace, name=namespace)
    try:
        await client.get(resource)
    except ObjectNotFoundError:
        return True
    return False


async def apply_sync_manifests(
    client: ClusterClient,
    name: str,
    namespace: str,
    sync_dir: Path,
    interval: datetime.timedelta,
    timeout: datetime.timedelta,
) -> None:
    """Apply the sync manifests and wait for the source, then the Kustomization."""
    await client.apply_kustomization(sync_dir)

    _LOGGER.info("waiting for cluster sync")
    await poll.poll_immediate(
        interval,
        timeout,
        poll.is_git_repository_ready(client, name, namespace),
        description=f"GitRepository {namespace}/{name}",
    )
    # The Kustomization can only become ready from an artifact of the source
    await poll.poll_immediate(
        interval,
        timeout,
        poll.is_kustomization_ready(client, name, namespace),
        description=f"Kustomization {namespace}/{name}",
    )


async def bootstrap(
    config: BootstrapConfig,
    client: ClusterClient,
    target: GitTarget,
    *,
    renderer: ManifestRenderer,
    key_provider: KeyProvider,
    tmp_dir: Path | None = None,
    on_deploy_key: DeployKeyCallback | None = None,
) -> BootstrapResult:
    """Bootstrap the toolkit on the cluster and sync it with the repository.

    `on_deploy_key` is awaited with the public key of a newly generated deploy
    key before the sync manifests are applied, so the caller can register it
    with the Git host.
    """
    config.validate()
    clean_target_path(target.path)

    if tmp_dir is None:
        with tempfile.TemporaryDirectory(prefix="flux-bootstrap-") as tmp:
            return await _bootstrap(
                config, client, target, renderer, key_provider, Path(tmp), on_deploy_key
            )
    return await _bootstrap(
        config, client, target, renderer, key_provider, tmp_dir, on_deploy_key
    )


async def _bootstrap(
    config: BootstrapConfig,
    client: ClusterClient,
    target: GitTarget,
    renderer: ManifestRenderer,
    key_provider: KeyProvider,
    tmp_dir: Path,
    on_deploy_key: DeployKeyCallback | None,
) -> BootstrapResult:
    namespace = config.namespace
    name = namespace

    installed = await should_install_manifests(client, namespace)
    if installed:
        with step("generating install manifests"):
            manifest = await generate_install_manifests(
                config,
                target_path=target.path,
                namespace=namespace,
                tmp_dir=tmp_dir,
                renderer=renderer,
                local_manifests=config.manifests_path,
            )
        with step(f"installing components in {namespace} namespace"):
            await apply_install_manifests(
                client, manifest, config.components, namespace, config.timeout
            )
        _LOGGER.info("install completed")
    else:
        _LOGGER.info("toolkit already synced, skipping install")

    public_key: str | None = None
    if await should_create_deploy_key(client, namespace):
        with step("configuring deploy key"):
            public_key = await generate_deploy_key(
                client, key_provider, target.url, namespace
            )
        if on_deploy_key is not None:
            await on_deploy_key(public_key)
    else:
        _LOGGER.info("deploy key %s/%s already exists", namespace, name)

    with step("generating sync manifests"):
        sync_dir = await generate_sync_manifests(
            target.url,
            config.branch,
            name,
            namespace,
            target.path,
            tmp_dir,
            target.interval,
        )

    with step("applying sync manifests"):
        await apply_sync_manifests(
            client, name, namespace, sync_dir, config.poll_interval, config.timeout
        )

    _LOGGER.info("bootstrap finished")
    return BootstrapResult(installed=installed, public_key=public_key)
