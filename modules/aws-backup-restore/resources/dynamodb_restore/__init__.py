"""Restore DynamoDB tables from AWS Backup notifications and publish the restored table ARN."""
from .backup_event import BackupEvent, parse_backup_message
from .config import WorkflowConfig, load_configuration
from .job_matcher import is_matching_job
from .target_name import derive_target_name
from .workflow import RestoreOrchestrator, StepResult, WorkflowInput, WorkflowState

__all__ = [
    "BackupEvent",
    "RestoreOrchestrator",
    "StepResult",
    "WorkflowConfig",
    "WorkflowInput",
    "WorkflowState",
    "derive_target_name",
    "is_matching_job",
    "load_configuration",
    "parse_backup_message",
]
