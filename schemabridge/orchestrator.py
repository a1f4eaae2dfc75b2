"""Migration orchestrator - coordinates audit, backup, migration and rollback."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .config import EngineConfig
from .errors import ConfigurationError, InsufficientData, MigrationError, NoBackupFound
from .models.migration import (
    BatchRunResult,
    EmergencyRollbackResult,
    EntityMigrationReport,
    EntityRollbackResult,
    MigrationProgress,
    MigrationStatus,
    SafetyAssessment,
)
from .models.record import IntegrityCheckResult, Record
from .services.backup import BackupRollbackManager
from .services.batch_processor import BatchMigrationProcessor
from .services.compatibility import CompatibilityMiddleware
from .services.integrity import IntegrityAuditor
from .services.performance import CompatibilityPerformanceMonitor
from .services.relationships import Lookups, RelationshipResolver
from .services.schema_registry import FieldMapRegistry
from .services.status_store import (
    MigrationStatusStore,
    complete_migration,
    fail_migration,
    start_migration,
    update_progress,
)
from .services.transformer import RecordTransformer
from .store.base import DocumentStore, TxOp
from .store.http_store import HTTPDocumentStore

logger = logging.getLogger(__name__)


def create_store(config: EngineConfig) -> DocumentStore:
    """Build the HTTP document-store client described by a configuration."""
    if not config.store_url or not config.app_id:
        raise ConfigurationError("store_url and app_id are required to connect to the document store")
    return HTTPDocumentStore(
        base_url=config.store_url,
        app_id=config.app_id,
        admin_token=config.admin_token,
        timeout=config.request_timeout,
        max_retries=config.max_retries,
    )


class MigrationOrchestrator:
    """
    Orchestrates migrations of the legacy dataset to the canonical schema.

    Handles:
    - Baseline and post-migration integrity audits
    - Pre-migration backups and rollback on failure
    - Batched record migration with relationship resolution
    - Migration status tracking for the compatibility layer
    - Emergency rollback across entities
    - Deciding when the compatibility layer can be turned off
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        store: Optional[DocumentStore] = None,
        registry: Optional[FieldMapRegistry] = None,
        status_store: Optional[MigrationStatusStore] = None,
        monitor: Optional[CompatibilityPerformanceMonitor] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Engine configuration
            store: Document store (built from the configuration when omitted)
            registry: Field-map registry (built from the configuration when omitted)
            status_store: Shared migration status table
            monitor: Shared compatibility performance monitor
        """
        self.config = config or EngineConfig()
        self.store = store or create_store(self.config)
        self.registry = registry or FieldMapRegistry(overrides_file=self.config.field_map_file)
        self.status_store = status_store or MigrationStatusStore()
        self.monitor = monitor or CompatibilityPerformanceMonitor()

        self.transformer = RecordTransformer(self.registry)
        self.resolver = RelationshipResolver(self.store, self.registry)
        self.auditor = IntegrityAuditor(self.store, self.registry, self.transformer.validator)
        self.backups = BackupRollbackManager(
            self.store,
            self.registry,
            restore_batch_size=self.config.restore_batch_size,
            default_version=self.config.migration_version,
        )
        self.middleware = CompatibilityMiddleware(
            self.registry,
            self.status_store,
            store=self.store,
            monitor=self.monitor,
        )

        self.status_store.initialize(
            self.entities(),
            scope=self.config.scope,
            version=self.config.migration_version,
        )

    def entities(self) -> List[str]:
        """Entities this engine migrates."""
        return list(self.config.entities) or self.registry.migratable_entities()

    def _scope(self, scope: Optional[str]) -> Optional[str]:
        return scope if scope is not None else self.config.scope

    def _where(self, scope: Optional[str]) -> Optional[Dict[str, Any]]:
        return {"storeId": scope} if scope else None

    async def _lookups(self, entity: str, scope: Optional[str]) -> Lookups:
        if not self.registry.relationship_fields(entity):
            return {}
        return await self.resolver.build_lookups(scope)

    def _transform_one(self, entity: str, record: Record, lookups: Lookups):
        resolved = self.resolver.resolve(entity, record, lookups) if lookups else record
        return self.transformer.transform(entity, resolved)

    async def run_migration(
        self,
        entity: str,
        scope: Optional[str] = None,
        dry_run: bool = False
    ) -> EntityMigrationReport:
        """
        Migrate one entity.

        Args:
            entity: Entity name
            scope: Tenant key (defaults to the configured scope)
            dry_run: Transform and validate without writing anything

        Returns:
            EntityMigrationReport describing every phase
        """
        scope = self._scope(scope)
        report = EntityMigrationReport(entity=entity, scope=scope, dry_run=dry_run)

        if not self.registry.has_entity(entity):
            report.error = f"Unknown entity: {entity}"
            return report

        logger.info(f"=== BASELINE AUDIT: {entity} ===")
        baseline = await self.auditor.audit(entity, scope)
        report.baseline_health = baseline.health_score

        if dry_run:
            return await self._run_dry(entity, scope, report)

        backed_up = False
        if self.config.create_backup:
            logger.info(f"=== BACKUP: {entity} ===")
            try:
                await self.backups.create_backup(
                    entity,
                    version=self.config.migration_version,
                    description=f"Pre-migration backup of {entity}",
                    validate_integrity=self.config.validate_backup,
                    scope=scope,
                )
                backed_up = True
            except Exception as e:
                report.error = f"Backup failed: {e}"
                report.status = fail_migration(self.status_store, entity, report.error, scope)
                return report

        logger.info(f"=== MIGRATION: {entity} ===")
        try:
            result, unresolved = await self._migrate_records(entity, scope)
            report.batch_result = result
            report.unresolved_references = unresolved

            if result.errors and backed_up and self.config.rollback_on_failure:
                raise MigrationError(
                    f"{len(result.errors)} batches failed to write", entity=entity
                )

            if result.total_failed == 0 and not result.cancelled:
                report.status = complete_migration(self.status_store, entity, scope)
            else:
                report.status = fail_migration(
                    self.status_store,
                    entity,
                    f"{result.total_failed} of {result.total_records} records failed to migrate",
                    scope,
                )

        except Exception as e:
            logger.error(f"Migration of {entity} failed: {e}")
            report.error = str(e)
            if backed_up and self.config.rollback_on_failure:
                report.rolled_back = await self._rollback(entity, scope)
            report.status = fail_migration(self.status_store, entity, str(e), scope)

        logger.info(f"=== VERIFICATION: {entity} ===")
        final = await self.auditor.audit(entity, scope)
        report.final_health = final.health_score

        return report

    async def _migrate_records(self, entity: str, scope: Optional[str]):
        lookups = await self._lookups(entity, scope)
        records = await self.store.fetch(entity, where=self._where(scope))
        start_migration(
            self.status_store, entity, len(records), scope, self.config.migration_version
        )

        unresolved = []

        def transform(record: Record):
            outcome = self._transform_one(entity, record, lookups)
            unresolved.extend(self.resolver.unresolved(entity, outcome.transformed_record))
            return outcome

        processor = BatchMigrationProcessor(
            self.store,
            batch_size=self.config.batch_size,
            max_concurrent_batches=self.config.max_concurrent_batches,
        )

        def on_progress(processed: int, total: int) -> None:
            progress = processor.progress
            update_progress(
                self.status_store, entity, progress.total_migrated, progress.total_failed, scope
            )
            logger.debug(f"{entity}: {processed}/{total} records processed")

        processor.progress_callback = on_progress
        result = await processor.run(entity, transform, scope=scope, records=records)
        update_progress(self.status_store, entity, result.total_migrated, result.total_failed, scope)

        if unresolved:
            logger.warning(f"{entity}: {len(unresolved)} relationship references could not be resolved")
        return result, len(unresolved)

    async def _rollback(self, entity: str, scope: Optional[str]) -> bool:
        logger.info(f"=== ROLLBACK: {entity} ===")
        try:
            await self.backups.restore_from_backup(entity, scope=scope)
            return True
        except Exception as e:
            logger.error(f"Rollback of {entity} failed: {e}")
            return False

    async def _run_dry(
        self,
        entity: str,
        scope: Optional[str],
        report: EntityMigrationReport
    ) -> EntityMigrationReport:
        preview = await self.dry_run_migration(entity, scope, limit=0)
        summary = preview["summary"]
        report.batch_result = BatchRunResult(
            entity=entity,
            total_records=summary["total"],
            total_processed=summary["total"],
            total_failed=summary["invalid"],
            record_errors=preview["recordErrors"],
        )
        report.unresolved_references = summary["unresolvedReferences"]
        report.status = self.status_store.get(entity, scope)
        return report

    async def migrate_all(
        self,
        entities: Optional[List[str]] = None,
        scope: Optional[str] = None
    ) -> List[EntityMigrationReport]:
        """Migrate entities one after another; a failing entity never stops the rest."""
        reports = []
        for entity in entities or self.entities():
            try:
                reports.append(await self.run_migration(entity, scope))
            except Exception as e:
                logger.error(f"Migration of {entity} aborted: {e}")
                reports.append(EntityMigrationReport(entity=entity, scope=self._scope(scope), error=str(e)))
        return reports

    async def dry_run_migration(
        self,
        entity: str,
        scope: Optional[str] = None,
        limit: int = 10
    ) -> Dict[str, Any]:
        """
        Preview a migration without writing.

        Args:
            entity: Entity name
            scope: Tenant key
            limit: Number of sample records to include

        Returns:
            Samples of original/transformed records plus validation totals
        """
        scope = self._scope(scope)
        lookups = await self._lookups(entity, scope)
        records = await self.store.fetch(entity, where=self._where(scope))

        samples = []
        progress = MigrationProgress(entity=entity, total=len(records))
        unresolved = 0

        for record in records:
            result = self._transform_one(entity, record, lookups)
            unresolved += len(self.resolver.unresolved(entity, result.transformed_record))
            progress.record(result.is_valid, record.get("id"), result.errors)

            if len(samples) < limit:
                samples.append({
                    "original": record,
                    "transformed": result.transformed_record,
                    "isValid": result.is_valid,
                    "errors": result.errors,
                    "warnings": result.warnings,
                    "mappingErrors": self.transformer.verify_mapping(
                        entity, record, result.transformed_record
                    ),
                })

        logger.info(progress.summary())
        return {
            "entity": entity,
            "scope": scope,
            "samples": samples,
            "recordErrors": progress.errors,
            "summary": {
                "total": progress.total,
                "valid": progress.successful,
                "invalid": progress.failed,
                "unresolvedReferences": unresolved,
            },
        }

    async def emergency_rollback(
        self,
        reason: str,
        entities: Optional[List[str]] = None,
        scope: Optional[str] = None,
        create_emergency_backup: bool = True
    ) -> EmergencyRollbackResult:
        """
        Roll entities back as fast as possible.

        The current state of each entity is snapshotted without validation
        (as the restore point, or as the backup itself when none exists yet),
        then the backup is restored without pre-restore validation.

        Args:
            reason: Why the rollback was triggered
            entities: Entities to roll back (defaults to all migrated entities)
            scope: Tenant key
            create_emergency_backup: Snapshot the current state first

        Returns:
            EmergencyRollbackResult; success only if every entity rolled back
        """
        scope = self._scope(scope)
        result = EmergencyRollbackResult(reason=reason)
        logger.warning(f"=== EMERGENCY ROLLBACK: {reason} ===")

        for entity in entities or self.entities():
            entity_result = EntityRollbackResult(entity=entity)
            try:
                has_backup = self.backups.get_backup(entity, scope) is not None
                if not has_backup:
                    if not create_emergency_backup:
                        raise NoBackupFound(f"No backup found for {entity}", entity=entity)
                    await self.backups.create_backup(
                        entity,
                        version=f"emergency-{datetime.utcnow().strftime('%Y%m%d%H%M%S')}",
                        description=f"Emergency backup: {reason}",
                        validate_integrity=False,
                        scope=scope,
                    )

                entity_result.records_restored = await self.backups.restore_from_backup(
                    entity,
                    validate_before_restore=False,
                    create_restore_point=create_emergency_backup and has_backup,
                    scope=scope,
                )
                entity_result.success = True
                fail_migration(self.status_store, entity, f"Rolled back: {reason}", scope)
            except Exception as e:
                entity_result.error = str(e)
                logger.error(f"Emergency rollback of {entity} failed: {e}")

            result.results.append(entity_result)

        result.completed_at = datetime.utcnow()
        return result

    async def safely_disable_compatibility_layer(
        self,
        entity: str,
        scope: Optional[str] = None
    ) -> SafetyAssessment:
        """Decide whether the compatibility middleware can be turned off for an entity."""
        scope = self._scope(scope)
        assessment = SafetyAssessment(entity=entity)
        status = self.status_store.get(entity, scope)

        if status is None or not status.is_completed:
            state = status.state.value if status else "unknown"
            assessment.issues.append(f"Entity {entity} migration is not complete (status: {state})")
            assessment.recommendations.append(f"Complete the migration of {entity} first")

        if status is not None and status.records_failed > 0:
            assessment.issues.append(f"{status.records_failed} records failed to migrate")
            assessment.recommendations.append("Fix the failed records and re-run the migration")

        audit = await self.auditor.audit(entity, scope)
        if any(i.record_id == "unknown" for i in audit.issues):
            assessment.issues.append(f"Could not re-audit {entity}")
        legacy_issues = self.auditor.legacy_issue_count(audit)
        if legacy_issues:
            assessment.issues.append(f"{legacy_issues} records still use legacy field names")
            assessment.recommendations.append("Run auto_fix_legacy_fields to rename the remaining legacy fields")

        success_rate = self.monitor.success_rate()
        if success_rate < self.config.min_success_rate:
            assessment.issues.append(
                f"Compatibility operation success rate {success_rate:.1%} is below "
                f"{self.config.min_success_rate:.0%}"
            )
            assessment.recommendations.append("Investigate failing compatibility operations")

        assessment.can_disable = not assessment.issues
        if assessment.can_disable:
            assessment.recommendations.append(f"Compatibility layer can safely be disabled for {entity}")

        return assessment

    async def require_safe_to_disable(self, entity: str, scope: Optional[str] = None) -> SafetyAssessment:
        """Like `safely_disable_compatibility_layer`, but raises InsufficientData when unsafe."""
        assessment = await self.safely_disable_compatibility_layer(entity, scope)
        if not assessment.can_disable:
            raise InsufficientData(
                f"Compatibility layer for {entity} cannot be disabled: {'; '.join(assessment.issues)}",
                entity=entity,
            )
        return assessment

    async def auto_fix_legacy_fields(
        self,
        entity: str,
        scope: Optional[str] = None,
        dry_run: bool = True
    ) -> Dict[str, Any]:
        """
        Rename remaining legacy fields in place, without validation.

        Returns:
            Counts of scanned, fixed and skipped records plus write errors
        """
        scope = self._scope(scope)
        records = await self.store.fetch(entity, where=self._where(scope))

        ops = []
        for record in records:
            if not self.transformer.legacy_fields_present(entity, record):
                continue
            renamed = self.transformer.rename_fields(entity, record)
            ops.append(TxOp.replace(entity, record["id"], record, renamed))

        errors = []
        failed = 0
        if not dry_run:
            for index, i in enumerate(range(0, len(ops), self.config.batch_size)):
                batch = ops[i:i + self.config.batch_size]
                try:
                    await self.store.transact(batch)
                except Exception as e:
                    logger.error(f"Auto-fix batch {index} of {entity} failed: {e}")
                    errors.append({"batchIndex": index, "error": str(e)})
                    failed += len(batch)

        logger.info(f"Auto-fix {entity}: {len(ops)} records with legacy fields (dry_run={dry_run})")
        return {
            "entity": entity,
            "dryRun": dry_run,
            "scanned": len(records),
            "fixed": 0 if dry_run else len(ops) - failed,
            "skipped": len(records) - len(ops),
            "pending": len(ops) if dry_run else failed,
            "errors": errors,
        }

    # Operator surface

    def start_migration(self, entity: str, total: int = 0, scope: Optional[str] = None) -> MigrationStatus:
        return start_migration(
            self.status_store, entity, total, self._scope(scope), self.config.migration_version
        )

    def complete_migration(self, entity: str, scope: Optional[str] = None) -> MigrationStatus:
        return complete_migration(self.status_store, entity, self._scope(scope))

    def fail_migration(self, entity: str, error: str, scope: Optional[str] = None) -> MigrationStatus:
        return fail_migration(self.status_store, entity, error, self._scope(scope))

    def update_progress(
        self,
        entity: str,
        migrated: int,
        failed: int,
        scope: Optional[str] = None
    ) -> MigrationStatus:
        return update_progress(self.status_store, entity, migrated, failed, self._scope(scope))

    def get_status(self, entity: str, scope: Optional[str] = None) -> Optional[MigrationStatus]:
        return self.status_store.get(entity, self._scope(scope))

    async def report(
        self,
        entity: Optional[str] = None,
        scope: Optional[str] = None
    ) -> Union[IntegrityCheckResult, str]:
        """
        Report on the data.

        With an entity, returns that entity's IntegrityCheckResult. Without
        one, returns a text summary of status and health for every entity.
        """
        scope = self._scope(scope)
        if entity is not None:
            return await self.auditor.audit(entity, scope)

        results = [await self.auditor.audit(e, scope) for e in self.entities()]
        lines = ["Migration Status", "=" * 16]
        for e in self.entities():
            status = self.status_store.get(e, scope)
            if status is None:
                lines.append(f"{e}: not tracked")
                continue
            lines.append(
                f"{e}: {status.state.value} "
                f"({status.records_migrated}/{status.records_total} migrated, {status.records_failed} failed)"
            )

        stats = self.status_store.statistics()
        lines.append(
            f"Completed {stats['completedMigrations']} of {stats['totalEntities']} entities, "
            f"{stats['failedMigrations']} failed, {stats['inProgressMigrations']} in progress"
        )
        lines.append("")
        lines.append(self.auditor.generate_report(results))
        return "\n".join(lines)

    async def audit_all(
        self,
        entities: Optional[List[str]] = None,
        scope: Optional[str] = None
    ) -> Dict[str, Any]:
        """Audit several entities within the configured scope."""
        return await self.auditor.audit_all(entities, self._scope(scope))

    async def close(self) -> None:
        await self.store.close()
