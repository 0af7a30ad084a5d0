"""Thin wrappers over the AWS calls the workflow makes.

Each gateway performs a single API call per operation and translates
botocore errors into workflow errors. Clients are created lazily so the
modules can be imported without AWS configuration.
"""
import re
import json
import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import (
    PublishError,
    RestoreConflictError,
    RestoreInitiationError,
    RestoreStatusError,
    TransientRestoreInitiationError,
)

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

CONFLICT_ERROR_CODES = {"TableAlreadyExistsException", "TableInUseException"}
TRANSIENT_ERROR_CODES = {
    "BackupInUseException",
    "InternalServerError",
    "LimitExceededException",
    "RequestLimitExceeded",
    "ServiceUnavailable",
    "ThrottlingException",
}
PENDING_TABLE_STATES = {"CREATING", "UPDATING"}
EXECUTION_NAME_MAX_LENGTH = 80
EXECUTION_NAME_HASH_LENGTH = 16


class RestoreStatus(str, Enum):
    PENDING = "PENDING"
    AVAILABLE = "AVAILABLE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not RestoreStatus.PENDING


@dataclass(frozen=True)
class RestoreJob:
    """Snapshot of a restore as seen in the table store."""
    target_name: str
    status: RestoreStatus
    resolved_identifier: Optional[str] = None
    detail: Optional[str] = None


def _error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


def _error_message(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Message", str(e))


def table_status_to_restore_status(table_status: Optional[str]) -> RestoreStatus:
    if table_status == "ACTIVE":
        return RestoreStatus.AVAILABLE
    if table_status in PENDING_TABLE_STATES:
        return RestoreStatus.PENDING
    return RestoreStatus.FAILED


class DynamoDBRestoreGateway:
    """Restores DynamoDB backups and reports on the restored table."""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("dynamodb")
        return self._client

    def initiate_restore(self, recovery_point_arn: str, target_name: str) -> RestoreJob:
        logger.info(f"Restoring backup {recovery_point_arn} into table {target_name}")
        try:
            resp = self.client.restore_table_from_backup(
                TargetTableName=target_name,
                BackupArn=recovery_point_arn,
            )
        except ClientError as e:
            code = _error_code(e)
            if code in CONFLICT_ERROR_CODES:
                logger.info(f"Restore target {target_name} already exists ({code})")
                raise RestoreConflictError(target_name, _error_message(e))
            logger.error(f"Failed to start restore into {target_name}: {_error_message(e)}", exc_info=True)
            if code in TRANSIENT_ERROR_CODES:
                raise TransientRestoreInitiationError(f"{code}: {_error_message(e)}")
            raise RestoreInitiationError(f"{code}: {_error_message(e)}")
        except BotoCoreError as e:
            logger.error(f"Failed to reach DynamoDB restoring {target_name}: {e}", exc_info=True)
            raise TransientRestoreInitiationError(str(e))

        description = resp.get("TableDescription", {})
        table_status = description.get("TableStatus")
        logger.info(f"Restore of {target_name} accepted with table status {table_status}")
        return RestoreJob(
            target_name=description.get("TableName", target_name),
            status=table_status_to_restore_status(table_status),
            resolved_identifier=description.get("TableArn"),
            detail=table_status,
        )

    def get_restore_status(self, target_name: str) -> RestoreJob:
        try:
            resp = self.client.describe_table(TableName=target_name)
        except ClientError as e:
            code = _error_code(e)
            if code == "ResourceNotFoundException":
                # A freshly restored table can take a moment to become visible
                logger.info(f"Table {target_name} not visible yet")
                return RestoreJob(target_name, RestoreStatus.PENDING, detail=code)
            if code in TRANSIENT_ERROR_CODES:
                logger.warning(f"Throttled describing {target_name}: {_error_message(e)}")
                return RestoreJob(target_name, RestoreStatus.PENDING, detail=code)
            logger.error(f"Error describing table {target_name}: {_error_message(e)}", exc_info=True)
            raise RestoreStatusError(f"{code}: {_error_message(e)}")
        except BotoCoreError as e:
            logger.error(f"Failed to reach DynamoDB describing {target_name}: {e}", exc_info=True)
            raise RestoreStatusError(str(e))

        table = resp.get("Table", {})
        table_status = table.get("TableStatus")
        logger.info(f"Table {target_name} status: {table_status}")
        return RestoreJob(
            target_name=target_name,
            status=table_status_to_restore_status(table_status),
            resolved_identifier=table.get("TableArn"),
            detail=table_status,
        )


class SSMParameterGateway:
    """Publishes values to SSM Parameter Store with overwrite semantics."""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("ssm")
        return self._client

    def _current_value(self, parameter_name: str) -> Optional[str]:
        try:
            return self.client.get_parameter(Name=parameter_name)["Parameter"]["Value"]
        except ClientError as e:
            if _error_code(e) == "ParameterNotFound":
                return None
            raise

    def publish_parameter(self, parameter_name: str, value: str) -> dict:
        try:
            if self._current_value(parameter_name) == value:
                logger.info(f"Parameter {parameter_name} already set to {value}")
                return {"parameter_name": parameter_name, "value": value, "updated": False}
            resp = self.client.put_parameter(
                Name=parameter_name,
                Value=value,
                Type="String",
                Overwrite=True,
            )
        except ClientError as e:
            logger.error(f"Error updating parameter '{parameter_name}': {_error_message(e)}", exc_info=True)
            raise PublishError(parameter_name, value, _error_message(e))
        except BotoCoreError as e:
            logger.error(f"Error updating parameter '{parameter_name}': {e}", exc_info=True)
            raise PublishError(parameter_name, value, str(e))

        logger.info(f"Parameter {parameter_name} set to {value} (version {resp.get('Version')})")
        return {"parameter_name": parameter_name, "value": value, "updated": True, "version": resp.get("Version")}


def execution_name_for(target_name: str) -> str:
    """Maps a target table name onto a Step Functions execution name.

    Execution names are limited to 80 characters of a restricted set. Names
    that fit are used as they are; anything else becomes a readable prefix
    plus a hash of the full target name, so distinct targets never share an
    execution.
    """
    sanitised = re.sub(r"[^A-Za-z0-9_-]", "_", target_name)
    if sanitised == target_name and len(target_name) <= EXECUTION_NAME_MAX_LENGTH:
        return target_name
    digest = hashlib.sha256(target_name.encode("utf-8")).hexdigest()[:EXECUTION_NAME_HASH_LENGTH]
    prefix = sanitised[:EXECUTION_NAME_MAX_LENGTH - EXECUTION_NAME_HASH_LENGTH - 1]
    return f"{prefix}-{digest}"


class StepFunctionsStarter:
    """Starts one state machine execution per target table."""

    def __init__(self, state_machine_arn: str, client=None):
        self.state_machine_arn = state_machine_arn
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("stepfunctions")
        return self._client

    def start(self, target_name: str, workflow_input: dict) -> dict:
        name = execution_name_for(target_name)
        try:
            resp = self.client.start_execution(
                stateMachineArn=self.state_machine_arn,
                name=name,
                input=json.dumps(workflow_input),
            )
        except ClientError as e:
            if _error_code(e) == "ExecutionAlreadyExists":
                logger.info(f"Execution {name} already exists; duplicate notification ignored")
                return {"execution_name": name, "started": False}
            logger.error(f"Error starting Step Function execution {name} on {self.state_machine_arn}: {e}", exc_info=True)
            raise
        logger.info(f"Started execution {resp.get('executionArn')}")
        return {
            "execution_name": name,
            "execution_arn": resp.get("executionArn"),
            "start_date": resp["startDate"].isoformat() if hasattr(resp.get("startDate"), "isoformat") else resp.get("startDate"),
            "started": True,
        }
