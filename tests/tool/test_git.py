"""Tests for the flux-bootstrap git command."""

import datetime
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from flux_bootstrap.bootstrap import BootstrapResult, GitTarget
from flux_bootstrap.config import BootstrapConfig
from flux_bootstrap.deploy_key import OpenSSHKeyProvider
from flux_bootstrap.exceptions import InputException
from flux_bootstrap.install import FluxInstallRenderer
from flux_bootstrap.kubectl import Kubectl
from flux_bootstrap.tool import git
from flux_bootstrap.tool.flux_bootstrap import main

URL = "ssh://git@github.com/example/fleet"
ARGS = ["git", "--url", URL, "--path", "clusters/prod"]


@pytest.fixture(name="bootstrap")
def bootstrap_fixture(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    """Fixture that replaces the bootstrap workflow."""
    mock = AsyncMock(return_value=BootstrapResult(installed=True, public_key=None))
    monkeypatch.setattr(git, "bootstrap", mock)
    return mock


def test_defaults(bootstrap: AsyncMock) -> None:
    """Test the command line defaults match the library defaults."""
    main(ARGS)

    bootstrap.assert_awaited_once()
    config, client, target = bootstrap.call_args.args
    assert config == BootstrapConfig()
    assert isinstance(client, Kubectl)
    assert target == GitTarget(url=URL, path="clusters/prod")
    kwargs = bootstrap.call_args.kwargs
    assert isinstance(kwargs["renderer"], FluxInstallRenderer)
    assert isinstance(kwargs["key_provider"], OpenSSHKeyProvider)


def test_flags(bootstrap: AsyncMock) -> None:
    """Test every flag ends up in the configuration."""
    main(
        ARGS
        + [
            "--branch=release",
            "--interval=5m",
            "--version=v0.2.0",
            "--components=source-controller, kustomize-controller",
            "--registry=registry.example.com/fluxcd",
            "--image-pull-secret=regcred",
            "--arch=arm64",
            "--no-watch-all-namespaces",
            "--no-network-policy",
            "--log-level=debug",
            "--namespace=gitops",
            "--timeout=1m30s",
            "--manifests=./manifests",
            "--context=kind-dev",
        ]
    )

    config, _, target = bootstrap.call_args.args
    assert config == BootstrapConfig(
        version="v0.2.0",
        components=("source-controller", "kustomize-controller"),
        registry="registry.example.com/fluxcd",
        image_pull_secret="regcred",
        arch="arm64",
        branch="release",
        watch_all_namespaces=False,
        network_policy=False,
        log_level="debug",
        manifests_path=Path("./manifests"),
        namespace="gitops",
        timeout=datetime.timedelta(minutes=1, seconds=30),
    )
    assert target.interval == datetime.timedelta(minutes=5)


def test_invalid_duration(bootstrap: AsyncMock) -> None:
    """Test a malformed duration is rejected by the parser."""
    with pytest.raises(SystemExit) as exc:
        main(ARGS + ["--timeout=soon"])
    assert exc.value.code == 2
    bootstrap.assert_not_awaited()


def test_missing_url(bootstrap: AsyncMock) -> None:
    """Test the repository URL is required."""
    with pytest.raises(SystemExit):
        main(["git", "--path", "clusters/prod"])
    bootstrap.assert_not_awaited()


def test_error_exit_code(
    bootstrap: AsyncMock, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test a failed run exits with an error."""
    bootstrap.side_effect = InputException("arch s390x is not supported")
    with pytest.raises(SystemExit) as exc:
        main(ARGS + ["--arch=s390x"])
    assert exc.value.code == 1
    assert "arch s390x is not supported" in capsys.readouterr().err


async def _call_with_key(*args: Any, **kwargs: Any) -> BootstrapResult:
    await kwargs["on_deploy_key"]("ssh-rsa AAAA test")
    return BootstrapResult(installed=True, public_key="ssh-rsa AAAA test")


def test_deploy_key_silent(
    bootstrap: AsyncMock, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test a new deploy key is printed without a prompt."""
    bootstrap.side_effect = _call_with_key
    main(ARGS + ["--silent"])
    assert "ssh-rsa AAAA test" in capsys.readouterr().out


def test_deploy_key_confirmed(
    bootstrap: AsyncMock, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test the run continues once the deploy key is confirmed."""
    bootstrap.side_effect = _call_with_key
    monkeypatch.setattr("builtins.input", lambda prompt: "y")
    main(ARGS)
    bootstrap.assert_awaited_once()


def test_deploy_key_declined(
    bootstrap: AsyncMock,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Test the run is aborted when the deploy key is not confirmed.

    The key is already stored, so the error explains how to read it again.
    """
    bootstrap.side_effect = _call_with_key
    monkeypatch.setattr("builtins.input", lambda prompt: "n")
    with pytest.raises(SystemExit) as exc:
        main(ARGS + ["--namespace=gitops"])
    assert exc.value.code == 1
    err = capsys.readouterr().err
    assert "kubectl -n gitops get secret gitops" in err
    assert "identity\\.pub" in err
