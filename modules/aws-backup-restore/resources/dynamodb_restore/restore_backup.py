"""State machine task: start restoring the backup into the target table."""
import logging

from .config import task_configuration
from .gateways import DynamoDBRestoreGateway
from .workflow import RestoreOrchestrator, WorkflowInput

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def _get_orchestrator(workflow: WorkflowInput) -> RestoreOrchestrator:
    config = task_configuration(workflow.source_pattern, workflow.replacement_pattern, workflow.parameter_name)
    return RestoreOrchestrator(config, DynamoDBRestoreGateway(), None)


def lambda_handler(event, context):
    """Returns the workflow input with ``restore_requested_at`` and ``restore_status`` set.

    Errors are raised so the state machine can retry
    TransientRestoreInitiationError and catch everything else.
    """
    logger.info(f"Mode: START restore. Event: {event}")
    workflow = WorkflowInput.from_dict(event)
    workflow = _get_orchestrator(workflow).request_restore(workflow)
    logger.info(f"Restore requested for table {workflow.target_name} ({workflow.restore_status})")
    return workflow.to_dict()
