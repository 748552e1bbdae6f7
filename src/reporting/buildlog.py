"""Build log formatting.

Staging output is read by humans scrolling platform logs, so every line
carries a fixed header:

    -----> Stage start
           info line
           **WARNING** warning line
           **ERROR** error line

Lines go to stdout/stderr only.
"""

import logging
import sys

STEP_MARKER = '-----> '
INDENT = '       '

# Pass as `extra=STEP` to mark a record as a stage-start line
STEP = {'step': True}


def begin_step(log: logging.Logger, message: str) -> None:
    """Log a stage-start line."""
    log.info(message, extra=STEP)


class BuildLogFormatter(logging.Formatter):
    """Format records with build-log headers instead of timestamps."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.exc_info and record.levelno >= logging.ERROR:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        if getattr(record, 'step', False):
            header = STEP_MARKER
        elif record.levelno >= logging.ERROR:
            header = f"{INDENT}**ERROR** "
        elif record.levelno >= logging.WARNING:
            header = f"{INDENT}**WARNING** "
        else:
            header = INDENT

        return header + message.replace('\n', '\n' + INDENT)


class OutcomeHandler(logging.Handler):
    """Copy formatted log lines into a BuildOutcome's diagnostics."""

    def __init__(self, outcome, level: int = logging.INFO):
        super().__init__(level)
        self.outcome = outcome
        self.setFormatter(BuildLogFormatter())

    def emit(self, record: logging.LogRecord) -> None:
        try:
            for line in self.format(record).split('\n'):
                self.outcome.add_diagnostic(line)
        except Exception:
            self.handleError(record)


def configure_logging(verbose: bool = False, stream=None) -> None:
    """Route build log output to a console stream.

    Replaces any existing root handlers so repeated calls (tests, chained
    commands) do not duplicate lines.
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(BuildLogFormatter())
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
