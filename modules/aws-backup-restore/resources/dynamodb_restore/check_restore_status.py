"""State machine task: one status check of the table being restored.

Invoked afresh after every Wait state; the table name in the workflow input
is all it relies on, plus ``restore_requested_at`` for the polling budget.
"""
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
    logger.info(f"Mode: MONITOR restore. Event: {event}")
    workflow = WorkflowInput.from_dict(event)
    workflow = _get_orchestrator(workflow).check_status(workflow)
    logger.info(f"Table {workflow.target_name} restore status: {workflow.restore_status}")
    return workflow.to_dict()
