import re
import datetime as dt

from .backup_event import BackupEvent
from .errors import TargetNameError
from .job_matcher import compile_source_pattern

TABLE_DELIMITER = "table/"
TIMESTAMP_SUFFIX_FORMAT = "-%Y%m%d-%H-%M-%S"
VALID_TABLE_NAME = re.compile(r"^[A-Za-z0-9_.-]{3,255}$")

# $1, ${1} and ${name} as accepted by Go/RE2 replacement templates
_DOLLAR_REFERENCE = re.compile(r"\$\$|\$\{(\w+)\}|\$(\d+)")


def _to_python_template(replacement: str) -> str:
    def convert(match):
        if match.group(0) == "$$":
            return "$"
        return r"\g<" + (match.group(1) or match.group(2)) + ">"

    return _DOLLAR_REFERENCE.sub(convert, replacement)


def table_name_from_arn(resource_arn: str) -> str:
    position = resource_arn.lower().rfind(TABLE_DELIMITER)
    name = resource_arn[position + len(TABLE_DELIMITER):] if position >= 0 else ""
    if not name:
        raise TargetNameError(f"Could not split DynamoDB table name from backed up resource ARN: {resource_arn}")
    return name


def timestamp_suffix(start_time: dt.datetime) -> str:
    return start_time.astimezone(dt.timezone.utc).strftime(TIMESTAMP_SUFFIX_FORMAT)


def derive_target_name(event: BackupEvent, source_pattern, replacement_pattern: str) -> str:
    """Returns the name of the table a backup is restored into.

    The source table name has the first match of ``source_pattern`` replaced
    by ``replacement_pattern``, and the backup start time appended as
    ``-YYYYMMDD-HH-mm-ss`` (UTC). The same event and patterns always give the
    same name, which is what makes repeated restores of one backup converge.
    """
    pattern = compile_source_pattern(source_pattern)
    table_name = table_name_from_arn(event.backed_up_resource_arn)
    try:
        base_name = pattern.sub(_to_python_template(replacement_pattern), table_name, count=1)
    except (re.error, IndexError) as e:
        raise TargetNameError(f"Invalid replacement pattern {replacement_pattern!r}: {e}")

    target_name = base_name + timestamp_suffix(event.start_time)
    if not VALID_TABLE_NAME.match(target_name):
        raise TargetNameError(f"Derived target table name is not a valid DynamoDB table name: {target_name}")
    return target_name
