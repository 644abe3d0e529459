"""Reconciler - drives one convergence pass per resource.

A pass walks ``unprobed -> probed -> decided -> applied | failed``:
1. Resolve the intent and check the config payload (no remote call yet)
2. Probe current state (skipped for imperative intents)
3. Decide the action
4. Dispatch it once, unless dry-run
5. Audit the decision
"""
import asyncio
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from ..jenkins.base import CommandExecutor, ExecutorError
from ..utils.audit_log import ChangeTracker
from ..utils.logging_config import timed_section
from .dispatcher import ActionDispatcher
from .drift import compute_drift
from .errors import ActionFailed, ConvergeError, InvalidConfig, ProbeFailed, UnknownAction
from .probe import StateProbe
from .schema import (
    ENSURE_ABSENT,
    ENSURE_PRESENT,
    IMPERATIVE,
    ActionKind,
    CurrentState,
    DesiredState,
    PassState,
    ReconcileResult,
    ResourceKind,
    parse_action,
)

logger = logging.getLogger(__name__)


def decide(intent: ActionKind, current: Optional[CurrentState]) -> ActionKind:
    """
    Pick the action for an intent given the probed state.

    Ensure-present always dispatches ``update`` on an existing object; the
    remote update is idempotent, so no attribute diff gates it.
    """
    if intent in IMPERATIVE:
        return intent
    if current is None:
        raise ProbeFailed(f"Intent {intent.value} needs a probed state")
    if intent in ENSURE_ABSENT:
        return ActionKind.DELETE if current.present else ActionKind.NONE
    if intent in ENSURE_PRESENT:
        return ActionKind.UPDATE if current.present else ActionKind.CREATE
    raise UnknownAction(f"No decision rule for action '{intent.value}'")


def validate_payload(desired: DesiredState) -> None:
    """
    Check the config payload source before anything touches the server.

    Raises:
        InvalidConfig: If a required config is missing, or a given one does
            not exist or is not a file
    """
    config = desired.config
    if config is None:
        if desired.needs_payload:
            raise InvalidConfig(
                f"{desired.kind.value} '{desired.name}' needs a config file",
                kind=desired.kind.value,
                name=desired.name,
            )
        return

    if not Path(config).expanduser().is_file():
        raise InvalidConfig(
            f"'{config}' does not exist or is not a valid Jenkins config file",
            kind=desired.kind.value,
            name=desired.name,
        )


class ConvergencePass:
    """State of one pass for one resource. Discarded when the pass ends."""

    def __init__(
        self,
        reconciler: "Reconciler",
        desired: DesiredState,
        dry_run: bool,
        action: Any = None,
    ):
        self.reconciler = reconciler
        self.desired = desired
        self.requested = desired.action if action is None else action
        self.current: Optional[CurrentState] = None
        self.result = ReconcileResult(
            kind=desired.kind,
            name=desired.name,
            dry_run=dry_run,
        )
        self.probe = StateProbe(
            reconciler.executor,
            reconciler.dispatcher,
            timeout=reconciler.timeout,
        )

    @property
    def label(self) -> str:
        return f"{self.desired.kind.value}/{self.desired.name}"

    async def run(self) -> ReconcileResult:
        result = self.result
        desired = self.desired
        dispatcher = self.reconciler.dispatcher

        # Unprobed: everything here is local
        try:
            intent = parse_action(self.requested)
            dispatcher.verb_for(desired.kind, intent)
            if intent in ENSURE_PRESENT:
                validate_payload(desired)
        except ConvergeError as e:
            logger.error(f"{self.label}: {e}")
            return result.fail(e)

        if intent in IMPERATIVE:
            result.action = intent
        else:
            try:
                self.current = await self.probe.fetch(desired.kind, desired.name)
            except ProbeFailed as e:
                logger.error(f"{self.label}: probe failed: {e}")
                return result.fail(e)

            result.state = PassState.PROBED
            result.present = self.current.present
            result.action = decide(intent, self.current)
            if intent in ENSURE_PRESENT:
                result.drift = compute_drift(desired, self.current)

        result.state = PassState.DECIDED
        logger.info(
            f"{self.label}: intent={intent.value} present={result.present} "
            f"-> {result.action.value}"
        )

        if result.action == ActionKind.NONE:
            result.state = PassState.APPLIED
            return result

        try:
            command = dispatcher.command_for(result.action, desired)
        except UnknownAction as e:
            return result.fail(e)

        result.command = str(command)
        result.changed = True

        if result.dry_run:
            logger.info(f"DRY RUN: {self.label}: would run '{command}'")
            return result

        try:
            success, output = await self.reconciler.executor.run(
                command, timeout=self.reconciler.timeout
            )
        except ExecutorError as e:
            return result.fail(self._action_failed(f"Could not run '{command}': {e}"))

        result.output = output
        if not success:
            return result.fail(self._action_failed(f"'{command}' failed: {output}", output))

        result.state = PassState.APPLIED
        logger.info(f"{self.label}: {result.action.value} applied")
        return result

    def cancel(self) -> None:
        """Mark the pass failed after cancellation."""
        if self.result.state in (PassState.UNPROBED, PassState.PROBED) and self.result.command is None:
            error: ConvergeError = ProbeFailed("Convergence pass cancelled")
        else:
            error = self._action_failed("Convergence pass cancelled")
        self.result.fail(error)

    def _action_failed(self, message: str, output: str = "") -> ActionFailed:
        logger.error(f"{self.label}: {message}")
        return ActionFailed(
            message,
            kind=self.desired.kind.value,
            name=self.desired.name,
            action=self.result.action.value,
            command=self.result.command,
            output=output,
        )

    def audit(self, user: Optional[str] = None) -> None:
        """Write the audit record for anything but a clean no-op."""
        result = self.result
        if result.success and result.action == ActionKind.NONE:
            return

        before = None
        if self.current is not None and self.current.present:
            before = self.current.to_dict()

        ChangeTracker(result.kind.value, result.name, user=user).log_change(
            action=result.action.value,
            success=result.success,
            command=result.command,
            output=result.output,
            error=result.error.message if result.error else None,
            dry_run=result.dry_run,
            present=result.present,
            before_state=before,
            drift=result.drift,
        )


class Reconciler:
    """
    Converge remote objects onto their desired state.

    Usage:
        reconciler = Reconciler(JenkinsCLI(server_config))
        result = await reconciler.reconcile(desired, dry_run=True)
    """

    def __init__(
        self,
        executor: CommandExecutor,
        dispatcher: Optional[ActionDispatcher] = None,
        timeout: Optional[float] = None,
        audit: bool = True,
        user: Optional[str] = None,
    ):
        """
        Initialize the Reconciler.

        Args:
            executor: Command channel to the server
            dispatcher: Intent to command mapping (default ActionDispatcher)
            timeout: Per-command timeout forwarded to the executor
            audit: Write audit records
            user: User recorded in audit records
        """
        self.executor = executor
        self.dispatcher = dispatcher or ActionDispatcher()
        self.timeout = timeout
        self.audit = audit
        self.user = user

    async def reconcile(
        self,
        desired: DesiredState,
        dry_run: bool = False,
        action: Any = None,
    ) -> ReconcileResult:
        """
        Run one convergence pass.

        Args:
            desired: Desired state of the resource
            dry_run: Decide and report, but never dispatch a mutating command
            action: Intent override (defaults to ``desired.action``)

        Returns:
            ReconcileResult; failures are on ``result.error``, not raised.
            Cancellation marks the pass failed and propagates.
        """
        convergence = ConvergencePass(self, desired, dry_run, action)

        try:
            async with timed_section("reconcile", target=convergence.label, dry_run=dry_run):
                await convergence.run()
        except asyncio.CancelledError:
            logger.warning(f"{convergence.label}: pass cancelled")
            convergence.cancel()
            if self.audit:
                convergence.audit(self.user)
            raise

        if self.audit:
            convergence.audit(self.user)
        return convergence.result

    async def reconcile_all(
        self,
        resources: Iterable[DesiredState],
        dry_run: bool = False,
        max_concurrency: int = 1,
        action: Any = None,
    ) -> list[ReconcileResult]:
        """
        Reconcile independent resources, at most ``max_concurrency`` at a time.

        Each resource gets its own pass and its own probe. Results keep the
        input order. ``action`` overrides every resource's intent.
        """
        semaphore = asyncio.Semaphore(max(1, max_concurrency))

        async def _one(desired: DesiredState) -> ReconcileResult:
            async with semaphore:
                return await self.reconcile(desired, dry_run=dry_run, action=action)

        return list(await asyncio.gather(*(_one(d) for d in resources)))

    async def probe(self, kind: ResourceKind, name: str) -> CurrentState:
        """Probe one object outside a pass (fresh, uncached)."""
        probe = StateProbe(self.executor, self.dispatcher, timeout=self.timeout)
        return await probe.fetch(kind, name)
