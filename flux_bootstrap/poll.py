"""Polling the cluster until a resource reports that it is ready.

A poll loop calls a condition immediately and then once per interval until
the condition returns `True`, raises, or the overall timeout elapses:

```python
from flux_bootstrap import poll

await poll.poll_immediate(
    interval, timeout, poll.is_git_repository_ready(client, "flux-system", "flux-system")
)
```

A condition that raises ends the loop immediately, there are no retries
beyond the loop itself.
"""

import asyncio
from collections.abc import Awaitable, Callable
import datetime
import logging

from .exceptions import ReadinessTimeoutError, ResourceFailedError
from .kubectl import ClusterClient
from .manifest import (
    GIT_REPOSITORY,
    KUSTOMIZE_KIND,
    Condition,
    GitRepository,
    Kustomization,
    NamedResource,
)
from .status import Status, StatusInfo

__all__ = [
    "ConditionFunc",
    "poll_immediate",
    "is_git_repository_ready",
    "is_kustomization_ready",
]

_LOGGER = logging.getLogger(__name__)

ConditionFunc = Callable[[], Awaitable[bool]]


async def poll_immediate(
    interval: datetime.timedelta,
    timeout: datetime.timedelta,
    condition: ConditionFunc,
    description: str = "condition",
) -> None:
    """Wait until the condition returns True.

    Raises `ReadinessTimeoutError` when the timeout elapses first. Errors
    raised by the condition are propagated unchanged.
    """
    attempts = 0
    try:
        async with asyncio.timeout(timeout.total_seconds()):
            while True:
                attempts += 1
                if await condition():
                    _LOGGER.debug("%s ready after %d attempts", description, attempts)
                    return
                await asyncio.sleep(interval.total_seconds())
    except TimeoutError as err:
        raise ReadinessTimeoutError(
            f"timed out waiting for {description} after {attempts} attempts"
        ) from err


def _ready_condition(
    client: ClusterClient,
    resource: NamedResource,
    conditions: Callable[[dict], list[Condition]],
) -> ConditionFunc:
    async def check() -> bool:
        doc = await client.get(resource)
        info = StatusInfo.from_conditions(conditions(doc))
        _LOGGER.debug("%s status: %s", resource, info)
        if info.status == Status.FAILED:
            raise ResourceFailedError(str(resource), info.error)
        return info.status == Status.READY

    return check


def is_git_repository_ready(
    client: ClusterClient, name: str, namespace: str
) -> ConditionFunc:
    """Return a condition that checks the Ready condition of a GitRepository."""
    return _ready_condition(
        client,
        NamedResource(kind=GIT_REPOSITORY, namespace=namespace, name=name),
        lambda doc: GitRepository.parse_doc(doc).conditions,
    )


def is_kustomization_ready(
    client: ClusterClient, name: str, namespace: str
) -> ConditionFunc:
    """Return a condition that checks the Ready condition of a Kustomization."""
    return _ready_condition(
        client,
        NamedResource(kind=KUSTOMIZE_KIND, namespace=namespace, name=name),
        lambda doc: Kustomization.parse_doc(doc).conditions,
    )
