"""Generating the install manifest for the toolkit components.

Rendering the controller manifests is delegated to a `ManifestRenderer`. The
default renderer exports them with the `flux` command line tool:

```python
from flux_bootstrap import install
from flux_bootstrap.config import BootstrapConfig

path = await install.generate_install_manifests(
    BootstrapConfig(),
    target_path="clusters/prod",
    namespace="flux-system",
    tmp_dir=Path("/tmp/bootstrap"),
    renderer=install.FluxInstallRenderer(),
)
```
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import datetime
import logging
from pathlib import Path

import aiofiles
import aiofiles.os

from .command import Command
from .config import BootstrapConfig, DEFAULT_NOTIFICATION_CONTROLLER, format_duration
from .exceptions import (
    FluxCliException,
    FluxException,
    GenerateException,
    InputException,
)

__all__ = [
    "InstallOptions",
    "ManifestRenderer",
    "FluxInstallRenderer",
    "generate_install_manifests",
    "clean_target_path",
    "manifests_dir",
]

_LOGGER = logging.getLogger(__name__)

FLUX_BIN = "flux"
DEFAULT_BASE_URL = "https://github.com/fluxcd/flux2/releases"
INSTALL_MANIFEST = "toolkit-components.yaml"

_RENDER_TIMEOUT = 300.0


@dataclass(kw_only=True, frozen=True)
class InstallOptions:
    """Options for rendering the toolkit install manifest."""

    base_url: str
    """Where the component manifests are read from, a release URL or local path."""

    version: str
    namespace: str
    components: tuple[str, ...]
    registry: str
    image_pull_secret: str
    arch: str
    watch_all_namespaces: bool
    network_policy: bool
    log_level: str
    notification_controller: str = DEFAULT_NOTIFICATION_CONTROLLER
    manifests_file: str
    timeout: datetime.timedelta

    @property
    def is_local(self) -> bool:
        """Return True when the manifests come from a local directory."""
        return not self.base_url.startswith(("http://", "https://"))

    @classmethod
    def from_config(
        cls,
        config: BootstrapConfig,
        namespace: str,
        local_manifests: Path | None = None,
    ) -> "InstallOptions":
        """Build the options from the bootstrap configuration."""
        return cls(
            base_url=str(local_manifests) if local_manifests else DEFAULT_BASE_URL,
            version=config.version,
            namespace=namespace,
            components=tuple(config.components),
            registry=config.registry,
            image_pull_secret=config.image_pull_secret,
            arch=config.arch,
            watch_all_namespaces=config.watch_all_namespaces,
            network_policy=config.network_policy,
            log_level=config.log_level,
            notification_controller=DEFAULT_NOTIFICATION_CONTROLLER,
            manifests_file=f"{namespace}.yaml",
            timeout=config.timeout,
        )


class ManifestRenderer(ABC):
    """Renders the toolkit install manifest."""

    @abstractmethod
    async def render(self, options: InstallOptions) -> bytes:
        """Return the rendered multi-document manifest."""


class FluxInstallRenderer(ManifestRenderer):
    """Renders the install manifest with `flux install --export`."""

    def args(self, options: InstallOptions) -> list[str]:
        """Return the command line for the options."""
        args = [
            FLUX_BIN,
            "install",
            "--export",
            "--version",
            options.version,
            "--namespace",
            options.namespace,
            "--components",
            ",".join(options.components),
            "--registry",
            options.registry,
            f"--watch-all-namespaces={str(options.watch_all_namespaces).lower()}",
            f"--network-policy={str(options.network_policy).lower()}",
            "--log-level",
            options.log_level,
            "--timeout",
            format_duration(options.timeout),
        ]
        if options.image_pull_secret:
            args.extend(["--image-pull-secret", options.image_pull_secret])
        if options.is_local:
            args.extend(["--manifests", options.base_url])
        return args

    async def render(self, options: InstallOptions) -> bytes:
        """Run flux and return the exported manifest."""
        cmd = Command(self.args(options), exc=FluxCliException, timeout=_RENDER_TIMEOUT)
        return await cmd.run()


def clean_target_path(target_path: str) -> str:
    """Return the target path relative to the repository root.

    Leading `/` and `./` are dropped so the path always stays below the
    directory it is joined to. A `..` segment is rejected.
    """
    parts = [part for part in target_path.split("/") if part not in ("", ".")]
    if ".." in parts:
        raise InputException(f"Target path '{target_path}' must not contain '..'")
    return "/".join(parts)


def manifests_dir(tmp_dir: Path, target_path: str, namespace: str) -> Path:
    """Return the directory holding the generated manifests for a namespace."""
    return tmp_dir / clean_target_path(target_path) / namespace


async def generate_install_manifests(
    config: BootstrapConfig,
    *,
    target_path: str,
    namespace: str,
    tmp_dir: Path,
    renderer: ManifestRenderer,
    local_manifests: Path | None = None,
) -> Path:
    """Render the install manifest and write it to disk, returning its path."""
    out_dir = manifests_dir(tmp_dir, target_path, namespace)
    try:
        await aiofiles.os.makedirs(out_dir, exist_ok=True)
    except OSError as err:
        raise GenerateException(f"creating manifests dir failed: {err}") from err

    manifest = out_dir / INSTALL_MANIFEST
    options = InstallOptions.from_config(config, namespace, local_manifests)
    _LOGGER.debug("Rendering install manifest from %s", options.base_url)
    try:
        output = await renderer.render(options)
    except FluxException as err:
        raise GenerateException(f"generating install manifests failed: {err}") from err

    try:
        async with aiofiles.open(manifest, mode="wb") as manifest_file:
            await manifest_file.write(output)
    except OSError as err:
        raise GenerateException(f"generating install manifests failed: {err}") from err
    return manifest
