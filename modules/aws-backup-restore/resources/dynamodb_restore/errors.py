"""Exceptions raised by the restore workflow.

Step Functions routes task failures on the exception class name, so the
names below are part of the state machine contract (see state_machine.py).
"""


class RestoreWorkflowError(Exception):
    """Base class for every workflow failure."""


class ParseError(RestoreWorkflowError):
    def __init__(self, stage: str, message: str = ""):
        self.stage = stage
        super().__init__(f"parse failure: {stage}" + (f" ({message})" if message else ""))


class ConfigurationError(RestoreWorkflowError):
    pass


class MatchError(ConfigurationError):
    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        super().__init__(f"Could not compile source pattern {pattern!r}: {reason}")


class TargetNameError(RestoreWorkflowError):
    pass


class RestoreConflictError(RestoreWorkflowError):
    """The target table already exists or is being created."""

    def __init__(self, target_name: str, message: str = ""):
        self.target_name = target_name
        super().__init__(f"Target table {target_name} already exists or is in use. {message}".strip())


class RestoreInitiationError(RestoreWorkflowError):
    pass


class TransientRestoreInitiationError(RestoreInitiationError):
    pass


class RestoreFailedError(RestoreWorkflowError):
    pass


class RestoreStatusError(RestoreWorkflowError):
    """The status of the restored table could not be read."""


class PollTimeout(RestoreWorkflowError):
    def __init__(self, target_name: str, max_wait_minutes: int):
        self.target_name = target_name
        self.max_wait_minutes = max_wait_minutes
        super().__init__(
            f"Restore of {target_name} still running after max wait ({max_wait_minutes} mins); "
            f"the restore job has been left running."
        )


class PublishError(RestoreWorkflowError):
    """The table was restored but the parameter could not be updated."""

    def __init__(self, parameter_name: str, table_arn: str, message: str):
        self.parameter_name = parameter_name
        self.table_arn = table_arn
        super().__init__(
            f"Restored table {table_arn} is available but parameter {parameter_name} "
            f"could not be updated: {message}"
        )
