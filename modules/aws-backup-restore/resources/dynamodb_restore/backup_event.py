"""Parsing of AWS Backup job notifications delivered through SNS.

Sample message body:

    An AWS Backup job was completed successfully. Recovery point ARN: arn:aws:dynamodb:us-east-1:637093487455:table/MyDynamoDBTable/backup/01568804569000-d3306d76. Backed up Resource ARN : arn:aws:dynamodb:us-east-1:637093487455:table/MyDynamoDBTable. Backup Job Id : 5a772b5a-36d5-4a69-9b18-ed2f5213c659

Fields are located by their literal markers and run up to the next period.
A resource ARN that itself contains a period or a marker will be split in the
wrong place; there is no escaping in the upstream format.
"""
import re
import logging
import datetime as dt
from dataclasses import dataclass

from .errors import ParseError

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

RECOVERY_POINT_MARKER = "Recovery point ARN: "
RESOURCE_MARKER = "Backed up Resource ARN : "
JOB_ID_MARKER = "Backup Job Id : "
START_TIME_ATTRIBUTE = "StartTime"


@dataclass(frozen=True)
class BackupEvent:
    status_message: str
    recovery_point_arn: str
    backed_up_resource_arn: str
    backup_job_id: str
    start_time: dt.datetime

    def to_dict(self) -> dict:
        return {
            "status_message": self.status_message,
            "recovery_point_arn": self.recovery_point_arn,
            "backed_up_resource_arn": self.backed_up_resource_arn,
            "backup_job_id": self.backup_job_id,
            "start_time": self.start_time.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BackupEvent":
        try:
            return cls(
                status_message=data["status_message"],
                recovery_point_arn=data["recovery_point_arn"],
                backed_up_resource_arn=data["backed_up_resource_arn"],
                backup_job_id=data["backup_job_id"],
                start_time=parse_start_time(data["start_time"]),
            )
        except KeyError as e:
            raise ParseError(str(e).strip("'"), "missing from workflow input")


def parse_start_time(value) -> dt.datetime:
    """Parses an RFC 3339 timestamp; a UTC offset is mandatory."""
    if isinstance(value, dict):
        value = value.get("Value")
    if not value or not isinstance(value, str):
        raise ParseError("start_time", "attribute missing")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(text)
    except ValueError:
        raise ParseError("start_time", f"not an RFC 3339 timestamp: {value}")
    if parsed.tzinfo is None:
        raise ParseError("start_time", f"timestamp has no UTC offset: {value}")
    return parsed


def _take_until_period(text: str, stage: str) -> tuple[str, str]:
    value, period, rest = text.partition(".")
    if not period or not value:
        raise ParseError(stage)
    return value, rest


def _after_marker(text: str, marker: str, stage: str) -> str:
    _, found, rest = text.partition(marker)
    if not found:
        raise ParseError(stage, f"marker {marker.strip()!r} not found")
    return rest


def _has_resource_segment(resource_id: str) -> bool:
    # Whether the resource is a supported type is left to the job matcher
    return bool(re.split(r"[:/]", resource_id)[-1])


def parse_backup_message(raw: str, attributes: dict) -> BackupEvent:
    """Builds a BackupEvent from the notification text and its message attributes.

    Raises ParseError naming the first field that could not be extracted; no
    partially populated event is ever returned.
    """
    if not raw:
        raise ParseError("status_message", "empty message")

    # 1. Status: the prose before the recovery point marker, up to its first period
    head, found, tail = raw.partition(RECOVERY_POINT_MARKER)
    if not found:
        raise ParseError("recovery_point_arn", f"marker {RECOVERY_POINT_MARKER.strip()!r} not found")
    status, period, _ = head.partition(".")
    if not period or not status.strip():
        raise ParseError("status_message")
    status_message = status + period

    # 2. Recovery point ARN
    recovery_point_arn, tail = _take_until_period(tail, "recovery_point_arn")

    # 3. Backed up resource ARN
    tail = _after_marker(tail, RESOURCE_MARKER, "backed_up_resource_arn")
    backed_up_resource_arn, tail = _take_until_period(tail, "backed_up_resource_arn")
    if not _has_resource_segment(backed_up_resource_arn):
        raise ParseError("backed_up_resource_arn", f"no resource name in {backed_up_resource_arn}")

    # 4. Backup job id: everything after the marker
    backup_job_id = _after_marker(tail, JOB_ID_MARKER, "backup_job_id")
    if not backup_job_id:
        raise ParseError("backup_job_id")

    start_time = parse_start_time((attributes or {}).get(START_TIME_ATTRIBUTE))

    return BackupEvent(
        status_message=status_message,
        recovery_point_arn=recovery_point_arn,
        backed_up_resource_arn=backed_up_resource_arn,
        backup_job_id=backup_job_id,
        start_time=start_time,
    )


def messages_from_notification(notification: dict) -> list[tuple[str, dict]]:
    """Returns (message text, message attributes) for every record of an SNS event.

    Accepts the Lambda shape (``Records[].Sns``) and the flattened shape where
    the SNS entity sits under ``Records[].Message``.
    """
    records = (notification or {}).get("Records") or []
    if not records:
        raise ParseError("notification", "no records in event")
    messages = []
    for record in records:
        entity = record.get("Sns") or record.get("Message")
        if not isinstance(entity, dict) or "Message" not in entity:
            raise ParseError("notification", f"record has no SNS message: {record.get('EventSubscriptionArn')}")
        messages.append((entity["Message"], entity.get("MessageAttributes") or {}))
    logger.info(f"Extracted {len(messages)} message(s) from notification")
    return messages
