"""State machine task handlers: restore_backup, check_restore_status, update_ssm_parameter."""
import datetime as dt
from unittest.mock import MagicMock, patch

import boto3
import pytest
from botocore.stub import Stubber

from dynamodb_restore import check_restore_status as crs
from dynamodb_restore import restore_backup as rb
from dynamodb_restore import update_ssm_parameter as usp
from dynamodb_restore.backup_event import BackupEvent
from dynamodb_restore.config import task_configuration
from dynamodb_restore.errors import PollTimeout, PublishError, RestoreFailedError, TransientRestoreInitiationError
from dynamodb_restore.gateways import DynamoDBRestoreGateway, SSMParameterGateway
from dynamodb_restore.workflow import RestoreOrchestrator, WorkflowInput

TARGET = 'Orders-restored-20210304-05-06-07'
TABLE_ARN = f'arn:aws:dynamodb:us-east-1:1:table/{TARGET}'
BACKUP_ARN = 'arn:aws:dynamodb:us-east-1:123456789012:table/Orders/backup/01614834367000-a1b2c3d4'


class Ctx: aws_request_id = 'test-id'


def workflow_event(**overrides):
    workflow = WorkflowInput(
        event=BackupEvent(
            status_message='An AWS Backup job was completed successfully.',
            recovery_point_arn=BACKUP_ARN,
            backed_up_resource_arn='arn:aws:dynamodb:us-east-1:1:table/Orders',
            backup_job_id='job-9',
            start_time=dt.datetime(2021, 3, 4, 5, 6, 7, tzinfo=dt.timezone.utc),
        ),
        source_pattern='Orders',
        replacement_pattern='Orders-restored',
        target_name=TARGET,
        parameter_name='/app/orders/table-arn',
    )
    return {**workflow.to_dict(), **overrides}


def stubbed(service):
    client = boto3.client(service, region_name='us-east-1')
    return client, Stubber(client)


def orchestrator_with(restore_gateway=None, parameter_gateway=None):
    def build(workflow):
        config = task_configuration(workflow.source_pattern, workflow.replacement_pattern,
                                    workflow.parameter_name, environ={'MAX_WAIT_MINUTES': '10'})
        return RestoreOrchestrator(config, restore_gateway, parameter_gateway)
    return build


def test_restore_backup_requests_restore():
    client, stubber = stubbed('dynamodb')
    stubber.add_response(
        'restore_table_from_backup',
        {'TableDescription': {'TableName': TARGET, 'TableStatus': 'CREATING', 'TableArn': TABLE_ARN}},
        {'TargetTableName': TARGET, 'BackupArn': BACKUP_ARN},
    )
    with patch.object(rb, '_get_orchestrator', side_effect=orchestrator_with(DynamoDBRestoreGateway(client))), stubber:
        out = rb.lambda_handler(workflow_event(), Ctx())
    assert out['target_name'] == TARGET
    assert out['restore_status'] == 'PENDING'
    assert out['restore_requested_at'] is not None
    stubber.assert_no_pending_responses()


def test_restore_backup_existing_table_continues():
    client, stubber = stubbed('dynamodb')
    stubber.add_client_error('restore_table_from_backup', 'TableAlreadyExistsException', 'exists')
    with patch.object(rb, '_get_orchestrator', side_effect=orchestrator_with(DynamoDBRestoreGateway(client))), stubber:
        out = rb.lambda_handler(workflow_event(), Ctx())
    assert out['restore_status'] == 'PENDING'


def test_restore_backup_throttled_raises_for_retry():
    client, stubber = stubbed('dynamodb')
    stubber.add_client_error('restore_table_from_backup', 'ThrottlingException', 'slow down')
    with patch.object(rb, '_get_orchestrator', side_effect=orchestrator_with(DynamoDBRestoreGateway(client))), stubber:
        with pytest.raises(TransientRestoreInitiationError):
            rb.lambda_handler(workflow_event(), Ctx())


def test_check_restore_status_pending():
    client, stubber = stubbed('dynamodb')
    stubber.add_response('describe_table', {'Table': {'TableName': TARGET, 'TableStatus': 'CREATING'}},
                         {'TableName': TARGET})
    requested_at = dt.datetime.now(dt.timezone.utc).isoformat()
    with patch.object(crs, '_get_orchestrator', side_effect=orchestrator_with(DynamoDBRestoreGateway(client))), stubber:
        out = crs.lambda_handler(workflow_event(restore_requested_at=requested_at), Ctx())
    assert out['restore_status'] == 'PENDING'
    assert out['resolved_identifier'] is None


def test_check_restore_status_available():
    client, stubber = stubbed('dynamodb')
    stubber.add_response('describe_table',
                         {'Table': {'TableName': TARGET, 'TableStatus': 'ACTIVE', 'TableArn': TABLE_ARN}})
    with patch.object(crs, '_get_orchestrator', side_effect=orchestrator_with(DynamoDBRestoreGateway(client))), stubber:
        out = crs.lambda_handler(workflow_event(), Ctx())
    assert out['restore_status'] == 'AVAILABLE'
    assert out['resolved_identifier'] == TABLE_ARN


def test_check_restore_status_timeout():
    client, stubber = stubbed('dynamodb')
    stubber.add_response('describe_table', {'Table': {'TableName': TARGET, 'TableStatus': 'CREATING'}})
    requested_at = (dt.datetime.now(dt.timezone.utc) - dt.timedelta(minutes=11)).isoformat()
    with patch.object(crs, '_get_orchestrator', side_effect=orchestrator_with(DynamoDBRestoreGateway(client))), stubber:
        with pytest.raises(PollTimeout):
            crs.lambda_handler(workflow_event(restore_requested_at=requested_at), Ctx())


def test_check_restore_status_failed_table():
    client, stubber = stubbed('dynamodb')
    stubber.add_response('describe_table', {'Table': {'TableName': TARGET, 'TableStatus': 'DELETING'}})
    with patch.object(crs, '_get_orchestrator', side_effect=orchestrator_with(DynamoDBRestoreGateway(client))), stubber:
        with pytest.raises(RestoreFailedError):
            crs.lambda_handler(workflow_event(), Ctx())


def test_update_ssm_parameter_publishes_table_arn():
    client, stubber = stubbed('ssm')
    stubber.add_client_error('get_parameter', 'ParameterNotFound', 'missing')
    stubber.add_response('put_parameter', {'Version': 1},
                         {'Name': '/app/orders/table-arn', 'Value': TABLE_ARN, 'Type': 'String', 'Overwrite': True})
    with patch.object(usp, '_get_orchestrator', side_effect=orchestrator_with(None, SSMParameterGateway(client))), stubber:
        out = usp.lambda_handler(workflow_event(restore_status='AVAILABLE', resolved_identifier=TABLE_ARN), Ctx())
    assert out['parameter']['updated'] is True
    assert out['target_name'] == TARGET


def test_update_ssm_parameter_without_table_arn():
    with patch.object(usp, '_get_orchestrator', side_effect=orchestrator_with(None, MagicMock())):
        with pytest.raises(PublishError):
            usp.lambda_handler(workflow_event(), Ctx())
