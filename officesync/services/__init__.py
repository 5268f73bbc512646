"""Service layer: record store, ledgers, deletion verifier, webhook queue, intake forms, resync and jobs."""
from officesync.services.config_service import ConfigurationService, StaticConfigurationService
from officesync.services.deletion_verifier import DeletionOutcome, DeletionVerifier
from officesync.services.idempotency_service import IdempotencyLedger, InMemoryIdempotencyLedger
from officesync.services.intake_form_service import IntakeFormService
from officesync.services.record_store import InMemoryRecordStore, RecordStore, SqlRecordStore
from officesync.services.recovery_service import InMemoryRecoveryLedger, RecoveryLedger
from officesync.services.resync_service import ResyncService
from officesync.services.rule_service import RuleService
from officesync.services.webhook_queue import EntityQueue

__all__ = [
    "RecordStore",
    "SqlRecordStore",
    "InMemoryRecordStore",
    "IdempotencyLedger",
    "InMemoryIdempotencyLedger",
    "ConfigurationService",
    "StaticConfigurationService",
    "DeletionVerifier",
    "DeletionOutcome",
    "RecoveryLedger",
    "InMemoryRecoveryLedger",
    "EntityQueue",
    "IntakeFormService",
    "ResyncService",
    "RuleService",
]
