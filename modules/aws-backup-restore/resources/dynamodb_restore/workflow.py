"""Restore workflow: notification -> restore -> poll -> publish.

Every step is a separate call that receives everything it needs as
arguments. Between polls nothing is kept in memory; the table store is the
only record of how far a restore has got, keyed by the target table name.
In deployment the steps run as Step Functions tasks (see state_machine.py);
``RestoreOrchestrator.advance`` runs the same steps one state at a time for
any other driver.
"""
import time
import logging
import datetime as dt
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .backup_event import BackupEvent, parse_backup_message, parse_start_time
from .config import WorkflowConfig
from .errors import (
    ParseError,
    PollTimeout,
    PublishError,
    RestoreConflictError,
    RestoreFailedError,
    RestoreWorkflowError,
    TransientRestoreInitiationError,
)
from .gateways import RestoreJob, RestoreStatus
from .job_matcher import is_matching_job
from .target_name import derive_target_name

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class WorkflowState(str, Enum):
    RECEIVED = "Received"
    MATCHED = "Matched"
    RESTORE_REQUESTED = "RestoreRequested"
    POLLING = "Polling"
    PUBLISHED = "Published"
    DONE = "Done"
    REJECTED = "Rejected"
    FAILED = "Failed"
    POLL_TIMEOUT = "PollTimeout"


TERMINAL_STATES = {
    WorkflowState.DONE,
    WorkflowState.REJECTED,
    WorkflowState.FAILED,
    WorkflowState.POLL_TIMEOUT,
}


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass(frozen=True)
class WorkflowInput:
    """Input carried from stage to stage.

    The first five fields are fixed when the workflow starts; later stages
    return a copy with their own result filled in.
    """
    event: BackupEvent
    source_pattern: str
    replacement_pattern: str
    target_name: str
    parameter_name: str
    restore_requested_at: Optional[dt.datetime] = None
    restore_status: Optional[str] = None
    resolved_identifier: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "backup_event": self.event.to_dict(),
            "source_pattern": self.source_pattern,
            "replacement_pattern": self.replacement_pattern,
            "target_name": self.target_name,
            "parameter_name": self.parameter_name,
            "restore_requested_at": self.restore_requested_at.isoformat() if self.restore_requested_at else None,
            "restore_status": self.restore_status,
            "resolved_identifier": self.resolved_identifier,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WorkflowInput":
        try:
            event = BackupEvent.from_dict(data["backup_event"])
            requested_at = data.get("restore_requested_at")
            return cls(
                event=event,
                source_pattern=data["source_pattern"],
                replacement_pattern=data["replacement_pattern"],
                target_name=data["target_name"],
                parameter_name=data["parameter_name"],
                restore_requested_at=parse_start_time(requested_at) if requested_at else None,
                restore_status=data.get("restore_status"),
                resolved_identifier=data.get("resolved_identifier"),
            )
        except KeyError as e:
            raise ParseError(str(e).strip("'"), "missing from workflow input")


@dataclass(frozen=True)
class StepResult:
    """The state a workflow instance is in, and what it carries into it."""
    state: WorkflowState
    raw: Optional[str] = None
    attributes: dict = field(default_factory=dict)
    event: Optional[BackupEvent] = None
    workflow: Optional[WorkflowInput] = None
    attempt: int = 0
    wait_seconds: int = 0
    error: Optional[str] = None
    cause: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class RestoreOrchestrator:

    def __init__(self, config: WorkflowConfig, restore_gateway, parameter_gateway,
                 clock: Callable[[], dt.datetime] = _utcnow):
        self.config = config
        self.restore_gateway = restore_gateway
        self.parameter_gateway = parameter_gateway
        self.clock = clock

    # -- individual steps ------------------------------------------------

    def build_workflow(self, event: BackupEvent) -> Optional[WorkflowInput]:
        """Returns the workflow input for a qualifying event, or None."""
        if not is_matching_job(event, self.config.source_pattern):
            return None
        target_name = derive_target_name(event, self.config.source_pattern, self.config.replacement_pattern)
        logger.info(f"Backup job {event.backup_job_id} qualifies for restore into {target_name}")
        return WorkflowInput(
            event=event,
            source_pattern=self.config.source_pattern.pattern,
            replacement_pattern=self.config.replacement_pattern,
            target_name=target_name,
            parameter_name=self.config.parameter_name,
        )

    def receive(self, raw: str, attributes: dict) -> Optional[WorkflowInput]:
        return self.build_workflow(parse_backup_message(raw, attributes))

    def request_restore(self, workflow: WorkflowInput) -> WorkflowInput:
        """Starts the restore; an existing target table counts as already started."""
        target_name = workflow.target_name or derive_target_name(
            workflow.event, workflow.source_pattern, workflow.replacement_pattern)
        try:
            job = self.restore_gateway.initiate_restore(workflow.event.recovery_point_arn, target_name)
            status = job.status.value
        except RestoreConflictError:
            logger.info(f"Restore into {target_name} already in flight, continuing to poll")
            status = RestoreStatus.PENDING.value
        return replace(
            workflow,
            target_name=target_name,
            restore_requested_at=workflow.restore_requested_at or self.clock(),
            restore_status=status,
        )

    def poll(self, target_name: str, restore_requested_at: Optional[dt.datetime] = None) -> RestoreJob:
        """One status check. Needs nothing but the table name; the deadline is optional."""
        job = self.restore_gateway.get_restore_status(target_name)
        if job.status is RestoreStatus.FAILED:
            raise RestoreFailedError(f"Restore of {target_name} failed with table status {job.detail}")
        if not job.status.is_terminal and restore_requested_at is not None:
            elapsed = self.clock() - restore_requested_at
            if elapsed > dt.timedelta(minutes=self.config.max_wait_minutes):
                raise PollTimeout(target_name, self.config.max_wait_minutes)
        return job

    def check_status(self, workflow: WorkflowInput) -> WorkflowInput:
        job = self.poll(workflow.target_name, workflow.restore_requested_at)
        return replace(
            workflow,
            restore_status=job.status.value,
            resolved_identifier=job.resolved_identifier if job.status is RestoreStatus.AVAILABLE else None,
        )

    def publish(self, workflow: WorkflowInput) -> dict:
        if not workflow.resolved_identifier:
            raise PublishError(workflow.parameter_name, workflow.target_name, "restored table ARN is unknown")
        return self.parameter_gateway.publish_parameter(workflow.parameter_name, workflow.resolved_identifier)

    # -- state machine ---------------------------------------------------

    def start(self, raw: str, attributes: dict) -> StepResult:
        return StepResult(WorkflowState.RECEIVED, raw=raw, attributes=attributes or {})

    def advance(self, result: StepResult) -> StepResult:
        """Runs the entry action of ``result.state`` and returns the next state."""
        if result.is_terminal:
            return result
        handlers = {
            WorkflowState.RECEIVED: self._on_received,
            WorkflowState.MATCHED: self._on_matched,
            WorkflowState.RESTORE_REQUESTED: self._on_restore_requested,
            WorkflowState.POLLING: self._on_polling,
            WorkflowState.PUBLISHED: self._on_published,
        }
        try:
            return handlers[result.state](result)
        except PollTimeout as e:
            logger.error(str(e))
            return replace(result, state=WorkflowState.POLL_TIMEOUT, wait_seconds=0,
                           error=type(e).__name__, cause=str(e))
        except RestoreWorkflowError as e:
            logger.error(f"Workflow failed in state {result.state.value}: {e}")
            return replace(result, state=WorkflowState.FAILED, wait_seconds=0,
                           error=type(e).__name__, cause=str(e))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"AWS error in state {result.state.value}: {e}", exc_info=True)
            return replace(result, state=WorkflowState.FAILED, wait_seconds=0,
                           error=type(e).__name__, cause=str(e))

    def run(self, raw: str, attributes: dict, sleep: Callable[[float], None] = time.sleep) -> StepResult:
        """Drives one notification to a terminal state in-process."""
        result = self.start(raw, attributes)
        while not result.is_terminal:
            if result.wait_seconds:
                sleep(result.wait_seconds)
            result = self.advance(result)
        logger.info(f"Workflow finished in state {result.state.value}")
        return result

    def _on_received(self, result: StepResult) -> StepResult:
        event = parse_backup_message(result.raw, result.attributes)
        return replace(result, state=WorkflowState.MATCHED, event=event)

    def _on_matched(self, result: StepResult) -> StepResult:
        workflow = self.build_workflow(result.event)
        if workflow is None:
            return replace(result, state=WorkflowState.REJECTED,
                           cause="Backup job does not require a restore")
        return replace(result, state=WorkflowState.RESTORE_REQUESTED, workflow=workflow)

    def _on_restore_requested(self, result: StepResult) -> StepResult:
        try:
            workflow = self.request_restore(result.workflow)
        except TransientRestoreInitiationError as e:
            attempt = result.attempt + 1
            if attempt >= self.config.restore_max_attempts:
                raise
            backoff = self.config.poll_interval_seconds * 2 ** result.attempt
            logger.warning(f"Restore initiation attempt {attempt} failed ({e}); retrying in {backoff}s")
            return replace(result, attempt=attempt, wait_seconds=backoff)
        return replace(result, state=WorkflowState.POLLING, workflow=workflow, attempt=0,
                       wait_seconds=self.config.poll_interval_seconds)

    def _on_polling(self, result: StepResult) -> StepResult:
        workflow = self.check_status(result.workflow)
        if workflow.restore_status == RestoreStatus.AVAILABLE.value:
            return replace(result, state=WorkflowState.PUBLISHED, workflow=workflow, wait_seconds=0)
        return replace(result, workflow=workflow, wait_seconds=self.config.poll_interval_seconds)

    def _on_published(self, result: StepResult) -> StepResult:
        self.publish(result.workflow)
        return replace(result, state=WorkflowState.DONE)
