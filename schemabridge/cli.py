"""Command-line interface for the migration engine."""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Optional

from .config import EngineConfig
from .errors import MigrationError
from .orchestrator import MigrationOrchestrator
from .services.status_store import MigrationStatusStore
from .store.base import DocumentStore
from .store.memory import InMemoryDocumentStore

logger = logging.getLogger(__name__)


def build_config(args) -> EngineConfig:
    """Configuration from --config, environment variables and flags, in that order."""
    config = EngineConfig.from_json_file(args.config) if args.config else EngineConfig()
    config = EngineConfig.from_env(config)

    if args.scope:
        config.scope = args.scope
    if getattr(args, "batch_size", None):
        config.batch_size = args.batch_size
    if getattr(args, "concurrency", None):
        config.max_concurrent_batches = args.concurrency
    return config


def load_data_store(file_path: str) -> InMemoryDocumentStore:
    """In-memory store seeded from a JSON file of {entity: [records]}."""
    with open(file_path) as f:
        data = json.load(f)
    return InMemoryDocumentStore(data)


def save_data_store(store: InMemoryDocumentStore, file_path: str, entities) -> None:
    with open(file_path, 'w') as f:
        json.dump({entity: store.records(entity) for entity in entities}, f, indent=2, default=str)
    print(f"Data saved to {file_path}")


def print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def main():
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="schemabridge - Migrate legacy records to the canonical schema"
    )
    parser.add_argument("--config", help="Path to engine config JSON file")
    parser.add_argument("--scope", help="Tenant key (storeId) to restrict to")
    parser.add_argument("--data", help="Run against a JSON file of {entity: [records]} instead of the store")
    parser.add_argument("--output-data", help="Write the resulting data back to this JSON file (with --data)")
    parser.add_argument("--status-file", help="JSON file that keeps migration statuses between runs")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    run_parser = subparsers.add_parser("run", help="Migrate one or all entities")
    run_parser.add_argument("--entity", action="append", help="Entity to migrate (repeatable, default all)")
    run_parser.add_argument("--batch-size", type=int, help="Records per batch")
    run_parser.add_argument("--concurrency", type=int, help="Concurrent batches per wave")

    dry_parser = subparsers.add_parser("dry-run", help="Preview a migration without writing")
    dry_parser.add_argument("--entity", required=True, help="Entity to preview")
    dry_parser.add_argument("--limit", type=int, default=5, help="Sample records to show")

    subparsers.add_parser("status", help="Show migration status")

    audit_parser = subparsers.add_parser("audit", help="Audit data integrity")
    audit_parser.add_argument("--entity", help="Entity to audit (default: summary of all)")

    backup_parser = subparsers.add_parser("backup", help="Back up an entity")
    backup_parser.add_argument("--entity", required=True, help="Entity to back up")
    backup_parser.add_argument("--output", required=True, help="Backup file to write")
    backup_parser.add_argument("--description", help="Backup description")
    backup_parser.add_argument("--validate", action="store_true", help="Refuse records missing required fields")

    verify_parser = subparsers.add_parser("verify-backup", help="Verify a backup file")
    verify_parser.add_argument("--backup-file", required=True, help="Backup file to verify")

    restore_parser = subparsers.add_parser("restore", help="Restore an entity from a backup file")
    restore_parser.add_argument("--backup-file", required=True, help="Backup file to restore")
    restore_parser.add_argument("--skip-validation", action="store_true", help="Skip the checksum check")

    emergency_parser = subparsers.add_parser("emergency-rollback", help="Emergency rollback from backup files")
    emergency_parser.add_argument("--reason", required=True, help="Why the rollback is needed")
    emergency_parser.add_argument("--backup-file", action="append", default=[], help="Backup file (repeatable)")
    emergency_parser.add_argument("--entity", action="append", help="Entity to roll back (repeatable)")

    disable_parser = subparsers.add_parser("can-disable", help="Check if the compatibility layer can be turned off")
    disable_parser.add_argument("--entity", required=True, help="Entity to check")

    fix_parser = subparsers.add_parser("auto-fix", help="Rename leftover legacy fields")
    fix_parser.add_argument("--entity", required=True, help="Entity to fix")
    fix_parser.add_argument("--apply", action="store_true", help="Write changes (default is a dry run)")

    args = parser.parse_args()

    # Set up logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if not args.command:
        parser.print_help()
        return

    try:
        exit_code = asyncio.run(run_command(args))
    except MigrationError as e:
        logger.error(e.message)
        exit_code = 1

    sys.exit(exit_code)


async def run_command(args) -> int:
    """Dispatch a parsed command; returns the process exit code."""
    config = build_config(args)
    store: Optional[DocumentStore] = load_data_store(args.data) if args.data else None
    status_store = MigrationStatusStore()
    if args.status_file and os.path.exists(args.status_file):
        status_store.load(args.status_file)
    orchestrator = MigrationOrchestrator(config, store=store, status_store=status_store)

    try:
        handler = COMMANDS[args.command]
        exit_code = await handler(orchestrator, args)
    finally:
        if args.data and args.output_data:
            save_data_store(orchestrator.store, args.output_data, orchestrator.registry.entities())
        if args.status_file:
            status_store.save(args.status_file)
        await orchestrator.close()

    return exit_code


async def run_migrations(orchestrator: MigrationOrchestrator, args) -> int:
    reports = await orchestrator.migrate_all(args.entity)

    print("\n" + "=" * 60)
    print("MIGRATION COMPLETE")
    print("=" * 60)
    for report in reports:
        state = report.status.state.value if report.status else "unknown"
        print(f"{report.entity}: {state}")
        if report.batch_result:
            result = report.batch_result
            print(f"  Processed: {result.total_processed}  Migrated: {result.total_migrated}  Failed: {result.total_failed}")
            if result.duration_seconds is not None:
                print(f"  Duration: {result.duration_seconds:.2f} seconds")
        print(f"  Health: {report.baseline_health} -> {report.final_health}")
        if report.unresolved_references:
            print(f"  Unresolved references: {report.unresolved_references}")
        if report.rolled_back:
            print("  Rolled back to pre-migration backup")
        if report.error:
            print(f"  Error: {report.error}")

    return 0 if all(r.success for r in reports) else 1


async def run_dry_run(orchestrator: MigrationOrchestrator, args) -> int:
    preview = await orchestrator.dry_run_migration(args.entity, limit=args.limit)
    print_json(preview)
    return 0


async def run_status(orchestrator: MigrationOrchestrator, args) -> int:
    print_json({
        "statistics": orchestrator.status_store.statistics(),
        "scope": orchestrator.status_store.scope_summary(orchestrator.config.scope),
        "compatibility": orchestrator.monitor.get_statistics(),
    })
    return 0


async def run_audit(orchestrator: MigrationOrchestrator, args) -> int:
    if args.entity:
        result = await orchestrator.report(args.entity)
        print_json(result.to_dict())
        return 0 if result.errors == 0 else 1

    print(await orchestrator.report())
    return 0


async def run_backup(orchestrator: MigrationOrchestrator, args) -> int:
    snapshot = await orchestrator.backups.create_backup(
        args.entity,
        version=orchestrator.config.migration_version,
        description=args.description,
        validate_integrity=args.validate,
        scope=orchestrator.config.scope,
    )
    orchestrator.backups.export_backup(args.entity, args.output, scope=snapshot.scope)
    print_json(snapshot.to_dict())
    return 0


async def run_verify_backup(orchestrator: MigrationOrchestrator, args) -> int:
    snapshot = orchestrator.backups.import_backup(args.backup_file)
    verification = await orchestrator.backups.verify_backup(snapshot.entity, scope=snapshot.scope)
    print_json(verification.to_dict())
    return 0 if verification.valid else 1


async def run_restore(orchestrator: MigrationOrchestrator, args) -> int:
    snapshot = orchestrator.backups.import_backup(args.backup_file)
    restored = await orchestrator.backups.restore_from_backup(
        snapshot.entity,
        validate_before_restore=not args.skip_validation,
        scope=snapshot.scope,
    )
    print(f"Restored {restored} {snapshot.entity} records")
    return 0


async def run_emergency_rollback(orchestrator: MigrationOrchestrator, args) -> int:
    entities = list(args.entity or [])
    for file_path in args.backup_file:
        snapshot = orchestrator.backups.import_backup(file_path)
        if snapshot.entity not in entities:
            entities.append(snapshot.entity)

    result = await orchestrator.emergency_rollback(args.reason, entities or None)
    print_json(result.to_dict())
    return 0 if result.success else 1


async def run_can_disable(orchestrator: MigrationOrchestrator, args) -> int:
    assessment = await orchestrator.safely_disable_compatibility_layer(args.entity)
    print_json(assessment.to_dict())
    return 0 if assessment.can_disable else 1


async def run_auto_fix(orchestrator: MigrationOrchestrator, args) -> int:
    result = await orchestrator.auto_fix_legacy_fields(args.entity, dry_run=not args.apply)
    print_json(result)
    return 0 if not result["errors"] else 1


COMMANDS = {
    "run": run_migrations,
    "dry-run": run_dry_run,
    "status": run_status,
    "audit": run_audit,
    "backup": run_backup,
    "verify-backup": run_verify_backup,
    "restore": run_restore,
    "emergency-rollback": run_emergency_rollback,
    "can-disable": run_can_disable,
    "auto-fix": run_auto_fix,
}


if __name__ == "__main__":
    main()
