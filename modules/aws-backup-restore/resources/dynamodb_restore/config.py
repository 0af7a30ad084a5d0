import os
import re
import logging
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigurationError
from .job_matcher import compile_source_pattern

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

DEFAULT_POLL_INTERVAL_SECONDS = 30
DEFAULT_MAX_WAIT_MINUTES = 120
DEFAULT_RESTORE_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class WorkflowConfig:
    source_pattern: re.Pattern
    replacement_pattern: str
    parameter_name: str
    state_machine_arn: Optional[str] = None
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS
    max_wait_minutes: int = DEFAULT_MAX_WAIT_MINUTES
    restore_max_attempts: int = DEFAULT_RESTORE_MAX_ATTEMPTS

    @classmethod
    def create(cls, source_pattern: str, replacement_pattern: str, parameter_name: str, **kwargs) -> "WorkflowConfig":
        """Builds a config, compiling the source pattern up front."""
        return cls(
            source_pattern=compile_source_pattern(source_pattern),
            replacement_pattern=replacement_pattern,
            parameter_name=parameter_name,
            **kwargs,
        )


def _positive_int(environ, name: str, default: int) -> int:
    raw = environ.get(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"Config Error: {name} must be an integer, got {raw!r}.")
    if value <= 0:
        raise ConfigurationError(f"Config Error: {name} must be positive, got {value}.")
    return value


def load_configuration(environ=None, require_state_machine: bool = True) -> WorkflowConfig:
    """Reads and validates environment variables.

    SOURCE_PATTERN is compiled here so a bad pattern fails every invocation
    with MatchError before any notification is looked at.
    """
    environ = os.environ if environ is None else environ
    try:
        source_pattern = environ["SOURCE_PATTERN"]
        replacement_pattern = environ["REPLACEMENT_PATTERN"]
        parameter_name = environ.get("PARAMETER_NAME") or environ["SSM_PARAMETER_NAME"]
        state_machine_arn = environ["STATE_MACHINE_ARN"] if require_state_machine else environ.get("STATE_MACHINE_ARN")
    except KeyError as e:
        logger.error(f"Error: Missing required env vars: {e}", exc_info=True)
        raise ConfigurationError(f"Missing required env vars: {e}")

    return task_configuration(
        source_pattern,
        replacement_pattern,
        parameter_name,
        environ=environ,
        state_machine_arn=state_machine_arn,
    )


def task_configuration(source_pattern: str, replacement_pattern: str, parameter_name: str,
                       environ=None, state_machine_arn: Optional[str] = None) -> WorkflowConfig:
    """Config for a state machine task: patterns come from the workflow input, timings from the environment."""
    environ = os.environ if environ is None else environ
    return WorkflowConfig.create(
        source_pattern,
        replacement_pattern,
        parameter_name,
        state_machine_arn=state_machine_arn,
        poll_interval_seconds=_positive_int(environ, "POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS),
        max_wait_minutes=_positive_int(environ, "MAX_WAIT_MINUTES", DEFAULT_MAX_WAIT_MINUTES),
        restore_max_attempts=_positive_int(environ, "RESTORE_MAX_ATTEMPTS", DEFAULT_RESTORE_MAX_ATTEMPTS),
    )
