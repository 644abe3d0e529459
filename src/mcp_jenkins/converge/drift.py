"""Attribute drift and human-readable pass summaries.

Drift is informational: ensure-present passes on a present object always
dispatch ``update``, so nothing here feeds the decision.
"""
from typing import Any, Iterable

from .schema import (
    ActionKind,
    CurrentState,
    DesiredState,
    PassState,
    ReconcileResult,
    to_jsonable,
)


def compute_drift(desired: DesiredState, current: CurrentState) -> list[str]:
    """
    List attributes whose probed value differs from the desired one.

    Args:
        desired: Desired state of the resource
        current: Probed state (absent objects have no drift)

    Returns:
        Lines of the form ``"field: <current> -> <desired>"``
    """
    if not current.present:
        return []

    lines = []
    for key, wanted in desired.attributes().items():
        if wanted is None:
            continue  # not managed
        actual = current.get(key)
        if _same(key, wanted, actual):
            continue
        lines.append(f"{key}: {_show(actual)} -> {_show(wanted)}")
    return lines


def _same(key: str, wanted: Any, actual: Any) -> bool:
    if key == "labels":
        return set(wanted) == set(actual or [])
    if key == "description":
        return (wanted or "") == (actual or "")
    if key == "env":
        return wanted == (actual or {})
    return wanted == actual


def _show(value: Any) -> str:
    value = to_jsonable(value)
    if value is None:
        return "(unset)"
    if isinstance(value, list):
        return "[" + ", ".join(str(v) for v in value) + "]"
    if isinstance(value, dict):
        return "{" + ", ".join(f"{k}={v}" for k, v in value.items()) + "}"
    return repr(value) if isinstance(value, str) else str(value)


_SYMBOLS = {
    ActionKind.CREATE: "+",
    ActionKind.DELETE: "-",
    ActionKind.UPDATE: "~",
    ActionKind.NONE: "=",
}


def summarize_results(results: Iterable[ReconcileResult]) -> str:
    """
    Create a human-readable summary of convergence passes.

    Useful for dry-run output and logging.
    """
    results = list(results)
    if not results:
        return "No resources declared"

    changed = sum(1 for r in results if r.changed)
    failed = sum(1 for r in results if not r.success)
    verb = "would change" if any(r.dry_run for r in results) else "changed"

    lines = [
        f"{len(results)} resources: {changed} {verb}, {failed} failed",
        "",
    ]

    for result in results:
        label = f"{result.kind.value} {result.name}"
        if result.state == PassState.FAILED:
            err = result.error
            lines.append(f"  [!] {label}: {err.category}: {err.message}")
            continue

        symbol = _SYMBOLS.get(result.action, "*")
        if result.action == ActionKind.NONE:
            lines.append(f"  [{symbol}] {label}: up to date")
        else:
            prefix = "DRY-RUN " if result.dry_run else ""
            lines.append(f"  [{symbol}] {label}: {prefix}{result.action.value}")
            if result.command:
                lines.append(f"      $ {result.command}")

        for line in result.drift:
            lines.append(f"      {line}")

    return "\n".join(lines)
