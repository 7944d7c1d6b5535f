"""Tracing of bootstrap workflow steps."""

import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

# No public API
__all__: list[str] = []


_steps: contextvars.ContextVar[tuple[str, ...]] = contextvars.ContextVar(
    "steps", default=()
)


def current_steps() -> tuple[str, ...]:
    """Return the names of the steps currently running, outermost first."""
    return _steps.get()


@contextmanager
def step(name: str) -> Generator[None, None, None]:
    """Run a named workflow step, logging when it starts and how long it took."""
    stack = current_steps() + (name,)
    token = _steps.set(stack)
    label = " > ".join(stack)
    _LOGGER.info("%s", name)
    t1 = perf_counter()
    try:
        yield
    except Exception:
        _LOGGER.debug("[Step] ! %s failed (%0.2fs)", label, perf_counter() - t1)
        raise
    else:
        _LOGGER.debug("[Step] < %s (%0.2fs)", label, perf_counter() - t1)
    finally:
        _steps.reset(token)
