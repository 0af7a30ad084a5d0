import datetime as dt

import pytest

from dynamodb_restore.backup_event import (
    BackupEvent,
    messages_from_notification,
    parse_backup_message,
    parse_start_time,
)
from dynamodb_restore.errors import ParseError

STATUS = "An AWS Backup job was completed successfully."
RECOVERY_POINT = "arn:aws:dynamodb:us-east-1:637093487455:table/MyDynamoDBTable/backup/01568804569000-d3306d76"
RESOURCE = "arn:aws:dynamodb:us-east-1:637093487455:table/MyDynamoDBTable"
JOB_ID = "5a772b5a-36d5-4a69-9b18-ed2f5213c659"
MESSAGE = (
    f"{STATUS} Recovery point ARN: {RECOVERY_POINT}. "
    f"Backed up Resource ARN : {RESOURCE}. Backup Job Id : {JOB_ID}"
)
ATTRIBUTES = {"StartTime": {"Type": "String", "Value": "2019-09-18T11:02:49.000Z"}}


def test_parse_sample_message():
    event = parse_backup_message(MESSAGE, ATTRIBUTES)
    assert event.status_message == STATUS
    assert event.recovery_point_arn == RECOVERY_POINT
    assert event.backed_up_resource_arn == RESOURCE
    assert event.backup_job_id == JOB_ID
    assert event.start_time == dt.datetime(2019, 9, 18, 11, 2, 49, tzinfo=dt.timezone.utc)


@pytest.mark.parametrize("recovery_point,resource,job_id", [
    ("rp-123", "arn:aws:dynamodb:us-east-1:1:table/Orders", "job-9"),
    ("arn:aws:backup:eu-west-2:123456789012:recovery-point:ABC", "arn:aws:s3:::my-bucket", "A B C"),
    ("x", "arn:aws-cn:dynamodb:cn-north-1:2:table/T_1-x", "0"),
])
def test_fields_are_exactly_the_text_between_markers(recovery_point, resource, job_id):
    raw = f"{STATUS} Recovery point ARN: {recovery_point}. Backed up Resource ARN : {resource}. Backup Job Id : {job_id}"
    event = parse_backup_message(raw, {"StartTime": "2021-03-04T05:06:07Z"})
    assert (event.recovery_point_arn, event.backed_up_resource_arn, event.backup_job_id) == (recovery_point, resource, job_id)


@pytest.mark.parametrize("marker,stage", [
    ("Recovery point ARN: ", "recovery_point_arn"),
    ("Backed up Resource ARN : ", "backed_up_resource_arn"),
    ("Backup Job Id : ", "backup_job_id"),
])
def test_missing_marker_names_stage(marker, stage):
    with pytest.raises(ParseError) as exc:
        parse_backup_message(MESSAGE.replace(marker, ""), ATTRIBUTES)
    assert exc.value.stage == stage


def test_status_without_period():
    raw = MESSAGE.replace(STATUS, "An AWS Backup job was completed successfully")
    with pytest.raises(ParseError) as exc:
        parse_backup_message(raw, ATTRIBUTES)
    assert exc.value.stage == "status_message"


def test_missing_start_time():
    with pytest.raises(ParseError) as exc:
        parse_backup_message(MESSAGE, {})
    assert exc.value.stage == "start_time"


def test_start_time_without_offset_is_rejected():
    with pytest.raises(ParseError) as exc:
        parse_backup_message(MESSAGE, {"StartTime": "2019-09-18T11:02:49"})
    assert exc.value.stage == "start_time"


def test_resource_without_name_segment():
    raw = MESSAGE.replace(RESOURCE, "arn:aws:dynamodb:us-east-1:1:table/")
    with pytest.raises(ParseError) as exc:
        parse_backup_message(raw, ATTRIBUTES)
    assert exc.value.stage == "backed_up_resource_arn"


def test_period_in_resource_name_splits_early():
    # Known limitation of the upstream format
    raw = MESSAGE.replace(RESOURCE, "arn:aws:dynamodb:us-east-1:1:table/my.table")
    event = parse_backup_message(raw, ATTRIBUTES)
    assert event.backed_up_resource_arn == "arn:aws:dynamodb:us-east-1:1:table/my"


def test_parse_start_time_keeps_offset():
    parsed = parse_start_time("2021-03-04T07:06:07+02:00")
    assert parsed.astimezone(dt.timezone.utc).hour == 5


def test_event_dict_round_trip():
    event = parse_backup_message(MESSAGE, ATTRIBUTES)
    assert BackupEvent.from_dict(event.to_dict()) == event


def test_event_from_incomplete_dict():
    data = parse_backup_message(MESSAGE, ATTRIBUTES).to_dict()
    del data["backup_job_id"]
    with pytest.raises(ParseError) as exc:
        BackupEvent.from_dict(data)
    assert exc.value.stage == "backup_job_id"


def test_messages_from_lambda_sns_event():
    notification = {"Records": [
        {"EventSource": "aws:sns", "Sns": {"Message": MESSAGE, "MessageAttributes": ATTRIBUTES}},
        {"EventSource": "aws:sns", "Sns": {"Message": "second"}},
    ]}
    assert messages_from_notification(notification) == [(MESSAGE, ATTRIBUTES), ("second", {})]


def test_messages_from_flattened_event():
    notification = {"Records": [{"Message": {"Message": MESSAGE, "MessageAttributes": ATTRIBUTES}}]}
    assert messages_from_notification(notification) == [(MESSAGE, ATTRIBUTES)]


def test_messages_from_empty_event():
    with pytest.raises(ParseError) as exc:
        messages_from_notification({"Records": []})
    assert exc.value.stage == "notification"


def test_resource_type_is_not_checked_by_parser():
    for resource in ("not-an-arn", "ARN:AWS:DYNAMODB:us-east-1:1:TABLE/Orders"):
        event = parse_backup_message(MESSAGE.replace(RESOURCE, resource), ATTRIBUTES)
        assert event.backed_up_resource_arn == resource
