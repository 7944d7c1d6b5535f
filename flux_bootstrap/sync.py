"""Generating the manifests that point the controllers at the Git repository."""

import datetime
import logging
from pathlib import Path

import aiofiles
import aiofiles.os
import yaml

from .config import format_duration
from .exceptions import GenerateException
from .install import clean_target_path, manifests_dir
from .manifest import (
    GIT_REPOSITORY,
    KUSTOMIZE_API_VERSION,
    KUSTOMIZE_KIND,
    CrossNamespaceSourceReference,
    GitRepository,
    GitRepositoryRef,
    GitRepositorySpec,
    Kustomization,
    KustomizationSpec,
    LocalObjectReference,
    ObjectMeta,
)

__all__ = [
    "build_git_repository",
    "build_kustomization",
    "generate_sync_manifests",
]

_LOGGER = logging.getLogger(__name__)

SOURCE_MANIFEST = "toolkit-source.yaml"
KUSTOMIZATION_MANIFEST = "toolkit-kustomization.yaml"
KUSTOMIZATION_FILE = "kustomization.yaml"

# The Kustomization reconciles independently of how often the source is polled
KUSTOMIZATION_INTERVAL = datetime.timedelta(minutes=10)
VALIDATION_CLIENT = "client"


def build_git_repository(
    url: str, branch: str, name: str, namespace: str, interval: datetime.timedelta
) -> GitRepository:
    """Return the GitRepository the source controller will poll."""
    return GitRepository(
        metadata=ObjectMeta(name=name, namespace=namespace),
        spec=GitRepositorySpec(
            url=url,
            interval=format_duration(interval),
            reference=GitRepositoryRef(branch=branch),
            secret_ref=LocalObjectReference(name=name),
        ),
    )


def build_kustomization(name: str, namespace: str, target_path: str) -> Kustomization:
    """Return the Kustomization that applies the target path of the repository."""
    return Kustomization(
        metadata=ObjectMeta(name=name, namespace=namespace),
        spec=KustomizationSpec(
            interval=format_duration(KUSTOMIZATION_INTERVAL),
            path=f"./{clean_target_path(target_path)}",
            prune=True,
            source_ref=CrossNamespaceSourceReference(kind=GIT_REPOSITORY, name=name),
            validation=VALIDATION_CLIENT,
        ),
    )


async def _write_file(path: Path, content: str) -> None:
    try:
        async with aiofiles.open(path, mode="w") as out:
            await out.write(content)
    except OSError as err:
        raise GenerateException(f"writing {path.name} failed: {err}") from err


async def generate_sync_manifests(
    url: str,
    branch: str,
    name: str,
    namespace: str,
    target_path: str,
    tmp_dir: Path,
    interval: datetime.timedelta,
) -> Path:
    """Write the sync manifests and return the kustomization directory."""
    out_dir = manifests_dir(tmp_dir, target_path, namespace)
    try:
        await aiofiles.os.makedirs(out_dir, exist_ok=True)
    except OSError as err:
        raise GenerateException(f"creating manifests dir failed: {err}") from err

    git_repository = build_git_repository(url, branch, name, namespace, interval)
    await _write_file(out_dir / SOURCE_MANIFEST, git_repository.yaml())

    kustomization = build_kustomization(name, namespace, target_path)
    await _write_file(out_dir / KUSTOMIZATION_MANIFEST, kustomization.yaml())

    resources = [SOURCE_MANIFEST, KUSTOMIZATION_MANIFEST]
    content = yaml.dump(
        {
            "apiVersion": KUSTOMIZE_API_VERSION,
            "kind": KUSTOMIZE_KIND,
            "resources": resources,
        },
        sort_keys=False,
    )
    await _write_file(out_dir / KUSTOMIZATION_FILE, content)
    _LOGGER.debug("Wrote sync manifests to %s", out_dir)
    return out_dir
