"""Guard utilities for pgreconcile steps."""

import functools
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

from pgreconcile.core.logging import get_logger

logger = get_logger(__name__)

Condition = Callable[[Any, Any], bool]


def _as_list(conditions: Optional[Union[Condition, Sequence[Condition]]]) -> List[Condition]:
    if conditions is None:
        return []
    if callable(conditions):
        return [conditions]
    return list(conditions)


def evaluate_guards(func: Callable, step: Any, ctx: Any) -> Tuple[bool, Optional[str]]:
    """
    Evaluate the guards attached to ``func`` by :func:`guarded`.

    Returns ``(True, None)`` when the action should run, otherwise ``(False, reason)``.
    Conditions are evaluated in declaration order, ``only_if`` first, and stop at
    the first one that blocks the action. Exceptions raised by a condition
    (for example a ProbeError) propagate.
    """
    for condition in getattr(func, "__only_if__", []):
        if not condition(step, ctx):
            return False, f"only_if {condition.__name__} is false"
    for condition in getattr(func, "__not_if__", []):
        if condition(step, ctx):
            return False, f"not_if {condition.__name__} is true"
    return True, None


def guarded(
    not_if: Optional[Union[Condition, Sequence[Condition]]] = None,
    only_if: Optional[Union[Condition, Sequence[Condition]]] = None,
) -> Callable:
    """
    Decorator that prevents a step action from running based on conditions.

    Each condition is called as ``condition(step, ctx)`` immediately before the
    action, on every run:
    - only_if: if any returns False, the action is skipped
    - not_if: if any returns True, the action is skipped

    A skipped action returns ``step.skipped(reason)`` instead of calling the
    wrapped function.

    Usage:
        @guarded(not_if=initialized, only_if=initdb_supported)
        def apply(self, ctx):
            ...

    Raises:
        ValueError: If no condition is provided.
    """
    not_if_list = _as_list(not_if)
    only_if_list = _as_list(only_if)
    if not not_if_list and not only_if_list:
        raise ValueError("Either not_if or only_if must be provided")

    def decorator(wrapped_func: Callable) -> Callable:
        @functools.wraps(wrapped_func)
        def wrapper(step, ctx, *args, **kwargs):
            should_run, reason = evaluate_guards(wrapper, step, ctx)
            if not should_run:
                logger.info("Skipping step", step=step.name, reason=reason)
                return step.skipped(reason)
            return wrapped_func(step, ctx, *args, **kwargs)

        wrapper.__not_if__ = not_if_list
        wrapper.__only_if__ = only_if_list
        return wrapper

    return decorator
