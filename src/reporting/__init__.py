"""Build outcome and build-log output."""

from reporting.outcome import BuildOutcome, StageRecord
from reporting.buildlog import (
    BuildLogFormatter,
    OutcomeHandler,
    STEP,
    begin_step,
    configure_logging,
)

__all__ = [
    'BuildOutcome',
    'StageRecord',
    'BuildLogFormatter',
    'OutcomeHandler',
    'STEP',
    'begin_step',
    'configure_logging',
]
