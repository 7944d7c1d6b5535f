"""Flux-bootstrap git action."""

from argparse import (
    SUPPRESS,
    ArgumentParser,
    ArgumentTypeError,
    BooleanOptionalAction,
    _SubParsersAction as SubParsersAction,
)
import asyncio
import datetime
import logging
import pathlib
from typing import cast

from flux_bootstrap import config as config_lib
from flux_bootstrap.bootstrap import DEFAULT_SYNC_INTERVAL, GitTarget, bootstrap
from flux_bootstrap.config import BootstrapConfig
from flux_bootstrap.deploy_key import OpenSSHKeyProvider
from flux_bootstrap.exceptions import FluxException
from flux_bootstrap.install import FluxInstallRenderer
from flux_bootstrap.kubectl import Kubectl

_LOGGER = logging.getLogger(__name__)


def duration(value: str) -> datetime.timedelta:
    """Argument type for durations like `1m` or `5m0s`."""
    try:
        return config_lib.parse_duration(value)
    except ValueError as err:
        raise ArgumentTypeError(str(err)) from err


def comma_separated(value: str) -> list[str]:
    """Argument type for comma separated values."""
    return [item.strip() for item in value.split(",") if item.strip()]


class GitAction:
    """Flux-bootstrap git action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "git",
                help="Bootstrap the toolkit components from an existing Git repository",
                description="""Install the toolkit components on the cluster and
                    configure them to sync from a path in a Git repository over SSH.
                    Re-running the command is safe: an installed toolkit and an
                    existing deploy key are left in place.""",
            ),
        )
        args.add_argument(
            "--url", required=True, help="SSH URL of the Git repository"
        )
        args.add_argument(
            "--path",
            required=True,
            help="Path within the repository the cluster syncs from",
        )
        args.add_argument(
            "--branch",
            default=config_lib.DEFAULT_BRANCH,
            help="Git branch the cluster syncs from",
        )
        args.add_argument(
            "--interval",
            type=duration,
            default=DEFAULT_SYNC_INTERVAL,
            help="How often the source controller polls the repository",
        )
        args.add_argument(
            "--version",
            "-v",
            default=config_lib.DEFAULT_VERSION,
            help="Toolkit version",
        )
        args.add_argument(
            "--components",
            type=comma_separated,
            default=list(config_lib.DEFAULT_COMPONENTS),
            help="List of components, accepts comma-separated values",
        )
        args.add_argument(
            "--registry",
            default=config_lib.DEFAULT_REGISTRY,
            help="Container registry where the toolkit images are published",
        )
        args.add_argument(
            "--image-pull-secret",
            default="",
            help="Secret used for pulling the toolkit images from a private registry",
        )
        args.add_argument(
            "--arch",
            default=config_lib.DEFAULT_ARCH,
            help=f"Arch can be {' or '.join(config_lib.SUPPORTED_ARCH)}",
        )
        args.add_argument(
            "--watch-all-namespaces",
            type=bool,
            default=True,
            action=BooleanOptionalAction,
            help="Watch for custom resources in all namespaces instead of only "
            "the namespace the toolkit is installed in",
        )
        args.add_argument(
            "--network-policy",
            type=bool,
            default=True,
            action=BooleanOptionalAction,
            help="Deny ingress access to the toolkit controllers from other namespaces",
        )
        args.add_argument(
            "--log-level",
            dest="controller_log_level",
            default=config_lib.DEFAULT_LOG_LEVEL,
            help="Log level of the toolkit controllers",
        )
        args.add_argument(
            "--manifests",
            type=pathlib.Path,
            default=None,
            help=SUPPRESS,
        )
        args.add_argument(
            "--namespace",
            "-n",
            default=config_lib.DEFAULT_NAMESPACE,
            help="Namespace the toolkit is installed in",
        )
        args.add_argument(
            "--timeout",
            type=duration,
            default=config_lib.DEFAULT_TIMEOUT,
            help="How long to wait for the install and the sync",
        )
        args.add_argument(
            "--kubeconfig",
            type=pathlib.Path,
            default=None,
            help="Path to the kubeconfig file",
        )
        args.add_argument(
            "--context",
            default=None,
            help="Kubernetes context to use",
        )
        args.add_argument(
            "--silent",
            "-s",
            type=bool,
            default=False,
            action=BooleanOptionalAction,
            help="Do not ask for confirmation after printing a new deploy key",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        url: str,
        path: str,
        branch: str,
        interval: datetime.timedelta,
        version: str,
        components: list[str],
        registry: str,
        image_pull_secret: str,
        arch: str,
        watch_all_namespaces: bool,
        network_policy: bool,
        controller_log_level: str,
        manifests: pathlib.Path | None,
        namespace: str,
        timeout: datetime.timedelta,
        kubeconfig: pathlib.Path | None,
        context: str | None,
        silent: bool,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = BootstrapConfig(
            version=version,
            components=tuple(components),
            registry=registry,
            image_pull_secret=image_pull_secret,
            arch=arch,
            branch=branch,
            watch_all_namespaces=watch_all_namespaces,
            network_policy=network_policy,
            log_level=controller_log_level,
            manifests_path=manifests,
            namespace=namespace,
            timeout=timeout,
        )

        async def show_deploy_key(public_key: str) -> None:
            print("Add this public key as a read-only deploy key to the repository:")
            print(public_key)
            if silent:
                return
            answer = await asyncio.to_thread(
                input, "Has the key been given access to the repository? [y/N] "
            )
            if answer.strip().lower() not in ("y", "yes"):
                raise FluxException(
                    "aborting, the deploy key was not confirmed. The key is kept in "
                    f"Secret {namespace}/{namespace}, print it again with: "
                    f"kubectl -n {namespace} get secret {namespace} "
                    "-o jsonpath='{.data.identity\\.pub}' | base64 -d"
                )

        await bootstrap(
            config,
            Kubectl(kubeconfig=kubeconfig, context=context),
            GitTarget(url=url, path=path, interval=interval),
            renderer=FluxInstallRenderer(),
            key_provider=OpenSSHKeyProvider(),
            on_deploy_key=show_deploy_key,
        )
