"""Build outcome: the terminal value of a compile."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from errors import EXIT_SUCCESS


@dataclass
class StageRecord:
    """Result of one pipeline stage."""
    name: str
    description: str
    status: str  # 'passed' or 'failed'
    message: str = ''
    duration: float = 0.0


@dataclass
class BuildOutcome:
    """Exit code plus the ordered diagnostic lines of one compile.

    Every stage may append diagnostics; the first failure fixes the exit
    code, error kind and final state.
    """
    exit_code: int = EXIT_SUCCESS
    diagnostics: list[str] = field(default_factory=list)
    stages: list[StageRecord] = field(default_factory=list)
    state: str = 'init'
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.exit_code == EXIT_SUCCESS and self.error_kind is None

    def start(self):
        """Mark compile start."""
        self.started_at = datetime.now()

    def add_diagnostic(self, line: str):
        self.diagnostics.append(line)

    def pass_stage(self, name: str, description: str, message: str = '', duration: float = 0.0):
        """Record passed stage."""
        self.stages.append(StageRecord(name, description, 'passed', message, duration))

    def fail_stage(self, name: str, description: str, kind: str, message: str,
                   exit_code: int, duration: float = 0.0):
        """Record failed stage and fix the outcome's exit code."""
        self.stages.append(StageRecord(name, description, 'failed', message, duration))
        self.error_kind = kind
        self.error_message = message
        self.exit_code = exit_code

    def finish(self, state: str):
        """Finalize with the terminal state name."""
        self.state = state
        self.finished_at = datetime.now()

    def to_dict(self) -> dict:
        """Return outcome as dictionary for JSON output."""
        duration = (self.finished_at - self.started_at).total_seconds() if self.finished_at and self.started_at else 0

        result = {
            'success': self.success,
            'exit_code': self.exit_code,
            'state': self.state,
            'duration_seconds': round(duration, 1),
            'stages': [
                {
                    'name': s.name,
                    'status': s.status,
                    'duration': round(s.duration, 1),
                }
                for s in self.stages
            ],
            'diagnostics': list(self.diagnostics),
        }

        # Include error details on failure
        if self.error_kind:
            result['error'] = {'kind': self.error_kind, 'message': self.error_message}

        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)
