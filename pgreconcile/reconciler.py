"""Sequential reconciliation pipeline for one ServerSpec on one host."""

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from pgreconcile.core.config import Settings, settings as default_settings
from pgreconcile.core.errors import ConfigurationError, ProbeError
from pgreconcile.core.lock import RunLock
from pgreconcile.core.logging import get_logger
from pgreconcile.host import local_host
from pgreconcile.host.base import Host
from pgreconcile.platform import SUPPORTED_FAMILIES, HostFacts, PlatformProfile, probe_platform
from pgreconcile.spec import ServerSpec, build_server_spec
from pgreconcile.state import ReconciliationState, RunContext
from pgreconcile.steps import ACTIONS

logger = get_logger(__name__)


@dataclass(frozen=True)
class PlannedStep:
    step: str
    will_run: Optional[bool]
    reason: Optional[str] = None
    # unguarded steps always run and change the host only to correct drift
    ensures: bool = False


class Reconciler:
    """
    Runs the steps of an action strictly in order.

    The first failing step aborts the run; nothing is retried. A ``RunLock``
    guards the run when ``lock_path`` is set.
    """

    def __init__(
        self,
        spec: ServerSpec,
        profile: PlatformProfile,
        host: Host,
        settings: Settings = default_settings,
        lock_path: Optional[str] = None,
    ):
        self.spec = spec
        self.profile = profile
        self.host = host
        self.settings = settings
        self.lock_path = lock_path

    def steps(self, action: str = "all") -> list:
        try:
            step_classes = ACTIONS[action]
        except KeyError:
            raise ConfigurationError(f"Unknown action {action!r}, expected one of {sorted(ACTIONS)}")
        return [step_class() for step_class in step_classes]

    def _context(self) -> RunContext:
        return RunContext(
            spec=self.spec,
            profile=self.profile,
            host=self.host,
            state=ReconciliationState.begin(self.spec),
            settings=self.settings,
        )

    def run(self, action: str = "all") -> ReconciliationState:
        steps = self.steps(action)
        ctx = self._context()
        log = logger.bind(action=action, version=self.spec.version, family=self.profile.family)

        lock = RunLock(self.lock_path) if self.lock_path else None
        if lock:
            lock.acquire()
        try:
            log.info("Reconciliation started")
            for step in steps:
                ctx.state.record(step.reconcile(ctx))
        finally:
            if lock:
                lock.release()

        log.info("Reconciliation finished", changed=ctx.state.changed_steps)
        return ctx.state

    def plan(self, action: str = "all") -> List[PlannedStep]:
        """
        Evaluate every step's guard without side effects.

        A probe that cannot answer is reported as unknown (``will_run=None``),
        never as a negative answer. Steps without guards are marked
        ``ensures``: they run every time but only act on drift.
        """
        ctx = self._context()
        planned = []
        for step in self.steps(action):
            if not step.has_guards:
                planned.append(PlannedStep(step=step.name, will_run=True, ensures=True))
                continue
            try:
                will_run, reason = step.should_run(ctx)
            except ProbeError as e:
                planned.append(PlannedStep(step=step.name, will_run=None, reason=str(e)))
                continue
            planned.append(PlannedStep(step=step.name, will_run=will_run, reason=reason))
        return planned


def prepare_local_run(
    values: Mapping[str, Any],
    settings: Settings = default_settings,
    facts: Optional[HostFacts] = None,
    host: Optional[Host] = None,
) -> Reconciler:
    """
    Probe the local host, build the ServerSpec and PlatformProfile, and wire a
    Reconciler to subprocess-backed collaborators.
    """
    facts = facts or probe_platform(settings.OS_RELEASE_PATH)
    if facts.family not in SUPPORTED_FAMILIES:
        raise ConfigurationError(f"Unsupported platform family {facts.family!r}")
    spec = build_server_spec(values, facts.family)
    profile = PlatformProfile.from_spec(spec, facts)
    host = host or local_host(facts, template_source=spec.cookbook, timeout=settings.COMMAND_TIMEOUT)
    return Reconciler(spec, profile, host, settings=settings, lock_path=settings.LOCK_FILE)
