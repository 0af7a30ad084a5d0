import re
import logging

from .backup_event import BackupEvent
from .errors import MatchError

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

# BACKUP_JOB_COMPLETED notifications can only be told apart by their prose
SUCCESSFUL_BACKUP_STATUS = "An AWS Backup job was completed successfully."
DYNAMODB_TABLE_ARN = re.compile(r"^arn:[^:]+:dynamodb:[^:]*:[^:]*:table/.+", re.IGNORECASE)


def compile_source_pattern(source_pattern) -> re.Pattern:
    if isinstance(source_pattern, re.Pattern):
        return source_pattern
    try:
        return re.compile(source_pattern)
    except (re.error, TypeError) as e:
        raise MatchError(str(source_pattern), str(e))


def is_dynamodb_table(resource_arn: str) -> bool:
    return DYNAMODB_TABLE_ARN.match(resource_arn) is not None


def is_matching_job(event: BackupEvent, source_pattern) -> bool:
    """Decides whether a completed backup should be restored.

    All three must hold:
      1. the job completed successfully
      2. the backed up resource is a DynamoDB table
      3. the resource ARN contains a match of ``source_pattern``

    Raises MatchError only when ``source_pattern`` does not compile.
    """
    pattern = compile_source_pattern(source_pattern)

    if SUCCESSFUL_BACKUP_STATUS not in event.status_message:
        logger.info(f"This was not a BACKUP_JOB_COMPLETED notification: {event.status_message}")
        return False

    if not is_dynamodb_table(event.backed_up_resource_arn):
        logger.info(f"The backed up resource was not a DynamoDB table: {event.backed_up_resource_arn}")
        return False

    if pattern.search(event.backed_up_resource_arn) is None:
        logger.info(f"Resource {event.backed_up_resource_arn} does not match source pattern {pattern.pattern}")
        return False

    return True
