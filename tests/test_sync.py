"""Tests for generating the sync manifests."""

import datetime
from pathlib import Path

import pytest
import yaml

from flux_bootstrap.exceptions import InputException
from flux_bootstrap.sync import (
    build_git_repository,
    build_kustomization,
    generate_sync_manifests,
)


def test_sync_object_field_mapping() -> None:
    """Test the sync objects reference each other and the target path."""
    repo = build_git_repository(
        "ssh://git@github.com/example/fleet",
        "main",
        "flux-system",
        "flux-system",
        datetime.timedelta(minutes=1),
    )
    ks = build_kustomization("flux-system", "flux-system", "clusters/prod")

    assert repo.spec.reference
    assert repo.spec.reference.branch == "main"
    assert repo.spec.secret_ref
    assert repo.spec.secret_ref.name == "flux-system"
    assert repo.spec.interval == "1m0s"

    assert ks.spec.path == "./clusters/prod"
    assert ks.spec.prune is True
    assert ks.spec.source_ref.kind == "GitRepository"
    assert ks.spec.source_ref.name == "flux-system"
    assert ks.spec.validation == "client"


@pytest.mark.parametrize(
    "interval", [datetime.timedelta(seconds=30), datetime.timedelta(hours=1)]
)
def test_kustomization_interval_is_fixed(interval: datetime.timedelta) -> None:
    """Test the Kustomization interval does not follow the source interval."""
    build_git_repository("ssh://git@example.com/fleet", "main", "a", "a", interval)
    ks = build_kustomization("a", "a", "clusters/prod")
    assert ks.spec.interval == "10m0s"


@pytest.mark.parametrize(
    ("target_path", "expected"),
    [
        ("clusters/prod", "./clusters/prod"),
        ("./clusters/prod", "./clusters/prod"),
        ("", "./"),
        ("/clusters/prod", "./clusters/prod"),
        ("clusters//prod/", "./clusters/prod"),
    ],
)
def test_kustomization_path(target_path: str, expected: str) -> None:
    """Test the target path is always relative to the repository root."""
    assert build_kustomization("a", "a", target_path).spec.path == expected


async def test_generate_sync_manifests(tmp_path: Path) -> None:
    """Test the sync manifests are written as an applyable kustomization."""
    out_dir = await generate_sync_manifests(
        "ssh://git@github.com/example/fleet",
        "main",
        "flux-system",
        "flux-system",
        "clusters/prod",
        tmp_path,
        datetime.timedelta(minutes=1),
    )
    assert out_dir == tmp_path / "clusters/prod/flux-system"
    assert sorted(p.name for p in out_dir.iterdir()) == [
        "kustomization.yaml",
        "toolkit-kustomization.yaml",
        "toolkit-source.yaml",
    ]

    kustomization = yaml.safe_load((out_dir / "kustomization.yaml").read_text())
    assert kustomization == {
        "apiVersion": "kustomize.config.k8s.io/v1beta1",
        "kind": "Kustomization",
        "resources": ["toolkit-source.yaml", "toolkit-kustomization.yaml"],
    }

    source = yaml.safe_load((out_dir / "toolkit-source.yaml").read_text())
    assert source["kind"] == "GitRepository"
    assert source["spec"]["ref"] == {"branch": "main"}

    ks = yaml.safe_load((out_dir / "toolkit-kustomization.yaml").read_text())
    assert ks["kind"] == "Kustomization"
    assert ks["spec"]["path"] == "./clusters/prod"


async def test_generate_sync_manifests_overwrites(tmp_path: Path) -> None:
    """Test a second run replaces the manifests of the first."""
    for branch in ("main", "dev"):
        out_dir = await generate_sync_manifests(
            "ssh://git@github.com/example/fleet",
            branch,
            "flux-system",
            "flux-system",
            "clusters/prod",
            tmp_path,
            datetime.timedelta(minutes=1),
        )
    source = yaml.safe_load((out_dir / "toolkit-source.yaml").read_text())
    assert source["spec"]["ref"]["branch"] == "dev"


@pytest.mark.parametrize("target_path", ["/clusters/prod", "./clusters/prod"])
async def test_generate_sync_manifests_stays_in_tmp_dir(
    tmp_path: Path, target_path: str
) -> None:
    """Test a rooted target path is still written below the scratch directory."""
    scratch = tmp_path / "scratch"
    out_dir = await generate_sync_manifests(
        "ssh://git@github.com/example/fleet",
        "main",
        "flux-system",
        "flux-system",
        target_path,
        scratch,
        datetime.timedelta(minutes=1),
    )
    assert out_dir == scratch / "clusters/prod/flux-system"
    assert out_dir.is_relative_to(scratch)


@pytest.mark.parametrize("target_path", ["../outside", "clusters/../../outside"])
async def test_generate_sync_manifests_parent_path(
    tmp_path: Path, target_path: str
) -> None:
    """Test a target path can't point above the repository root."""
    with pytest.raises(InputException, match="must not contain"):
        await generate_sync_manifests(
            "ssh://git@github.com/example/fleet",
            "main",
            "flux-system",
            "flux-system",
            target_path,
            tmp_path / "scratch",
            datetime.timedelta(minutes=1),
        )
    assert not list(tmp_path.iterdir())
