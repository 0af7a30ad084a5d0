"""Amazon States Language definition of the restore workflow.

Task Retry/Catch clauses match on the exception class names in errors.py.
"""
import json

from .config import DEFAULT_POLL_INTERVAL_SECONDS, DEFAULT_RESTORE_MAX_ATTEMPTS

RESTORE_BACKUP = "RestoreBackup"
WAIT_FOR_RESTORE = "WaitForRestore"
CHECK_RESTORE_STATUS = "CheckRestoreStatus"
RESTORE_STATUS_CHOICE = "RestoreStatusChoice"
UPDATE_SSM_PARAMETER = "UpdateSSMParameter"
DONE = "Done"
RESTORE_FAILED = "RestoreFailed"
POLL_TIMED_OUT = "PollTimedOut"
PUBLISH_FAILED = "PublishFailed"


def _catch(error_names, next_state):
    return {"ErrorEquals": list(error_names), "ResultPath": "$.error", "Next": next_state}


def build_definition(restore_function_arn: str, status_function_arn: str, publish_function_arn: str,
                     poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS,
                     restore_max_attempts: int = DEFAULT_RESTORE_MAX_ATTEMPTS) -> dict:
    return {
        "Comment": "Restore a DynamoDB backup and publish the restored table ARN",
        "StartAt": RESTORE_BACKUP,
        "States": {
            RESTORE_BACKUP: {
                "Type": "Task",
                "Resource": restore_function_arn,
                "Retry": [{
                    "ErrorEquals": ["TransientRestoreInitiationError"],
                    "IntervalSeconds": poll_interval_seconds,
                    "MaxAttempts": max(restore_max_attempts - 1, 0),
                    "BackoffRate": 2.0,
                }],
                "Catch": [_catch(["States.ALL"], RESTORE_FAILED)],
                "Next": WAIT_FOR_RESTORE,
            },
            WAIT_FOR_RESTORE: {
                "Type": "Wait",
                "Seconds": poll_interval_seconds,
                "Next": CHECK_RESTORE_STATUS,
            },
            CHECK_RESTORE_STATUS: {
                "Type": "Task",
                "Resource": status_function_arn,
                "Catch": [
                    _catch(["PollTimeout"], POLL_TIMED_OUT),
                    _catch(["States.ALL"], RESTORE_FAILED),
                ],
                "Next": RESTORE_STATUS_CHOICE,
            },
            RESTORE_STATUS_CHOICE: {
                "Type": "Choice",
                "Choices": [{
                    "Variable": "$.restore_status",
                    "StringEquals": "AVAILABLE",
                    "Next": UPDATE_SSM_PARAMETER,
                }],
                "Default": WAIT_FOR_RESTORE,
            },
            UPDATE_SSM_PARAMETER: {
                "Type": "Task",
                "Resource": publish_function_arn,
                "Catch": [_catch(["States.ALL"], PUBLISH_FAILED)],
                "Next": DONE,
            },
            DONE: {"Type": "Succeed"},
            RESTORE_FAILED: {
                "Type": "Fail",
                "Error": "Failed",
                "Cause": "The restore could not be started or the table store reported a failure",
            },
            POLL_TIMED_OUT: {
                "Type": "Fail",
                "Error": "PollTimeout",
                "Cause": "The restore did not finish within the polling budget and was left running",
            },
            PUBLISH_FAILED: {
                "Type": "Fail",
                "Error": "PublishError",
                "Cause": "The table was restored but the parameter could not be updated",
            },
        },
    }


def definition_json(restore_function_arn: str, status_function_arn: str, publish_function_arn: str, **kwargs) -> str:
    return json.dumps(
        build_definition(restore_function_arn, status_function_arn, publish_function_arn, **kwargs),
        indent=2,
    )
