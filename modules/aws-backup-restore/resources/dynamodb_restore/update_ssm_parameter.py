"""State machine task: publish the restored table ARN to SSM Parameter Store."""
import logging

from .config import task_configuration
from .gateways import SSMParameterGateway
from .workflow import RestoreOrchestrator, WorkflowInput

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def _get_orchestrator(workflow: WorkflowInput) -> RestoreOrchestrator:
    config = task_configuration(workflow.source_pattern, workflow.replacement_pattern, workflow.parameter_name)
    return RestoreOrchestrator(config, None, SSMParameterGateway())


def lambda_handler(event, context):
    logger.info(f"Publishing restored table. Event: {event}")
    workflow = WorkflowInput.from_dict(event)
    result = _get_orchestrator(workflow).publish(workflow)
    return {**workflow.to_dict(), 'parameter': result}
