"""Configuration objects for flux-bootstrap.

A `BootstrapConfig` is built once from the command line (or by a library
caller) and passed explicitly to every step of the bootstrap workflow.
"""

from dataclasses import dataclass, field
import datetime
from pathlib import Path
import re

from .exceptions import InputException

__all__ = [
    "BootstrapConfig",
    "parse_duration",
    "format_duration",
]

DEFAULT_VERSION = "latest"
DEFAULT_REGISTRY = "ghcr.io/fluxcd"
DEFAULT_BRANCH = "main"
DEFAULT_NAMESPACE = "flux-system"
DEFAULT_ARCH = "amd64"
DEFAULT_LOG_LEVEL = "info"
DEFAULT_NOTIFICATION_CONTROLLER = "notification-controller"
DEFAULT_TIMEOUT = datetime.timedelta(minutes=5)
DEFAULT_POLL_INTERVAL = datetime.timedelta(seconds=2)

DEFAULT_COMPONENTS = (
    "source-controller",
    "kustomize-controller",
    "helm-controller",
    "notification-controller",
)
REQUIRED_COMPONENTS = ("source-controller", "kustomize-controller")
SUPPORTED_ARCH = ("amd64", "arm64")
SUPPORTED_LOG_LEVELS = ("debug", "info", "error")

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {
    "h": datetime.timedelta(hours=1),
    "m": datetime.timedelta(minutes=1),
    "s": datetime.timedelta(seconds=1),
    "ms": datetime.timedelta(milliseconds=1),
}


@dataclass(kw_only=True, frozen=True)
class BootstrapConfig:
    """Immutable settings for a bootstrap run."""

    version: str = DEFAULT_VERSION
    """Toolkit version to install."""

    components: tuple[str, ...] = DEFAULT_COMPONENTS
    """Controllers to install, must include the required components."""

    registry: str = DEFAULT_REGISTRY
    """Container registry where the toolkit images are published."""

    image_pull_secret: str = ""
    """Secret used to pull the toolkit images from a private registry."""

    arch: str = DEFAULT_ARCH
    """Target architecture of the cluster nodes."""

    branch: str = DEFAULT_BRANCH
    """Git branch the controllers will sync from."""

    watch_all_namespaces: bool = True
    """Watch custom resources in all namespaces or only the install namespace."""

    network_policy: bool = True
    """Deny ingress access to the controllers from other namespaces."""

    log_level: str = DEFAULT_LOG_LEVEL
    """Log level of the installed controllers."""

    manifests_path: Path | None = None
    """Local directory with the toolkit manifests, overrides the release download."""

    namespace: str = DEFAULT_NAMESPACE
    """Namespace the toolkit is installed in."""

    timeout: datetime.timedelta = field(default=DEFAULT_TIMEOUT)
    """How long to wait for rollouts and readiness."""

    poll_interval: datetime.timedelta = field(default=DEFAULT_POLL_INTERVAL)
    """How often to check readiness while waiting."""

    def validate(self) -> None:
        """Check the configuration before anything touches the cluster."""
        if self.arch not in SUPPORTED_ARCH:
            raise InputException(
                f"arch {self.arch} is not supported, can be {list(SUPPORTED_ARCH)}"
            )
        if self.log_level not in SUPPORTED_LOG_LEVELS:
            raise InputException(
                f"log level {self.log_level} is not supported, "
                f"can be {list(SUPPORTED_LOG_LEVELS)}"
            )
        for component in REQUIRED_COMPONENTS:
            if component not in self.components:
                raise InputException(f"component {component} is required")


def parse_duration(value: str) -> datetime.timedelta:
    """Parse a duration string such as `1m`, `90s` or `1h30m`."""
    value = value.strip()
    if not value:
        raise ValueError("Empty duration")
    if value == "0":
        return datetime.timedelta()
    total = datetime.timedelta()
    pos = 0
    for match in _DURATION_RE.finditer(value):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(value):
        raise ValueError(f"Invalid duration '{value}'")
    return total


def format_duration(value: datetime.timedelta) -> str:
    """Render a duration the way kubernetes API objects serialize them, e.g. `10m0s`."""
    total_ms = round(value.total_seconds() * 1000)
    if total_ms == 0:
        return "0s"
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    seconds, millis = divmod(rem, 1000)
    secs = f"{seconds}.{millis:03d}".rstrip("0") if millis else str(seconds)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"
