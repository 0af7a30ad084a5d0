"""Lambda subscribed to the AWS Backup SNS topic.

Parses each notification, and for backups of matching DynamoDB tables starts
the restore state machine with the workflow input.
"""
import json
import logging

from .backup_event import messages_from_notification
from .config import load_configuration
from .errors import ConfigurationError, ParseError, TargetNameError
from .gateways import StepFunctionsStarter
from .workflow import RestoreOrchestrator

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def _get_orchestrator(config):
    return RestoreOrchestrator(config, None, None)


def _get_starter(config):
    return StepFunctionsStarter(config.state_machine_arn)


def lambda_handler(event, context):
    logger.info(f"Lambda invoked with event: {json.dumps(event, default=str)}")

    try:
        config = load_configuration()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return {'statusCode': 500, 'body': {'message': f"Configuration error: {e}"}}

    orchestrator = _get_orchestrator(config)
    starter = _get_starter(config)

    try:
        messages = messages_from_notification(event)
    except ParseError as e:
        logger.error(f"Unable to parse SNS input: {e}")
        return {'statusCode': 400, 'body': {'message': str(e), 'stage': e.stage}}

    executions = []
    rejected = 0
    failures = []
    for raw, attributes in messages:
        try:
            workflow = orchestrator.receive(raw, attributes)
        except (ParseError, TargetNameError) as e:
            logger.error(f"Unable to build workflow input from message {raw!r}: {e}")
            failures.append({'message': str(e), 'error': type(e).__name__})
            continue

        if workflow is None:
            logger.info(f"Input does not require a restore: {raw}")
            rejected += 1
            continue

        executions.append(starter.start(workflow.target_name, workflow.to_dict()))

    status_code = 400 if failures and not executions and not rejected else 200
    return {
        'statusCode': status_code,
        'body': {
            'executions': executions,
            'rejected': rejected,
            'failures': failures,
        },
    }
