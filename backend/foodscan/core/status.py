from enum import Enum
from typing import Dict, Optional


class Stage(str, Enum):
    UPLOAD = "upload"
    ANALYZE = "analyze"
    SEARCH = "search"


class StageStatus(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    ERROR = "error"


class StageTracker:
    """
    Per-stage status: idle -> in_progress -> success | error.
    A finished stage (success or error) may be started again.
    """

    def __init__(self):
        self._status: Dict[Stage, StageStatus] = {s: StageStatus.IDLE for s in Stage}
        self._errors: Dict[Stage, str] = {}

    def status(self, stage: Stage) -> StageStatus:
        return self._status[stage]

    def error(self, stage: Stage) -> Optional[str]:
        return self._errors.get(stage)

    def start(self, stage: Stage) -> None:
        if self._status[stage] == StageStatus.IN_PROGRESS:
            raise ValueError(f"Stage '{stage.value}' is already in progress")
        self._errors.pop(stage, None)
        self._status[stage] = StageStatus.IN_PROGRESS

    def succeed(self, stage: Stage) -> None:
        self._finish(stage, StageStatus.SUCCESS)

    def fail(self, stage: Stage, message: str) -> None:
        self._finish(stage, StageStatus.ERROR)
        self._errors[stage] = message

    def _finish(self, stage: Stage, status: StageStatus) -> None:
        if self._status[stage] != StageStatus.IN_PROGRESS:
            raise ValueError(f"Stage '{stage.value}' is not in progress ({self._status[stage].value})")
        self._status[stage] = status

    def snapshot(self) -> Dict[str, str]:
        return {s.value: st.value for s, st in self._status.items()}
