"""Run-scoped state shared by the steps of one reconciliation run."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pgreconcile.core.config import Settings
from pgreconcile.host.base import Host
from pgreconcile.platform import PlatformProfile
from pgreconcile.spec import ServerSpec


@dataclass(frozen=True)
class StepResult:
    step: str
    changed: bool
    skipped: bool = False
    reason: Optional[str] = None


@dataclass
class ReconciliationState:
    """
    Key/value store created at run start and discarded at run end.

    Earlier steps publish decisions here (``version``, ``data_dir``,
    ``conf_dir``) so later steps read them instead of recomputing.
    """

    values: Dict[str, Any] = field(default_factory=dict)
    results: List[StepResult] = field(default_factory=list)

    @classmethod
    def begin(cls, spec: ServerSpec) -> "ReconciliationState":
        return cls(
            values={
                "version": spec.version,
                "data_dir": spec.data_directory,
                "conf_dir": spec.config_directory,
            }
        )

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value

    def __getitem__(self, key: str) -> Any:
        return self.values[key]

    def record(self, result: StepResult) -> None:
        self.results.append(result)

    @property
    def changed(self) -> bool:
        return any(result.changed for result in self.results)

    @property
    def changed_steps(self) -> List[str]:
        return [result.step for result in self.results if result.changed]


@dataclass
class RunContext:
    """Everything a step needs, passed explicitly through the pipeline."""

    spec: ServerSpec
    profile: PlatformProfile
    host: Host
    state: ReconciliationState
    settings: Settings
