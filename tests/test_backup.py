"""
Tests for BackupRollbackManager and the backup checksum.

Covers:
- Checksum stability under record and key order
- Backup / restore round trip and restore points
- Verification against the snapshot and the live data
- Rollback history
- Export / import through JSON files
"""

import json

import pytest

from schemabridge.errors import IntegrityCheckFailed, NoBackupFound, ValidationFailed
from schemabridge.services.backup import BackupRollbackManager, calculate_checksum
from schemabridge.store.base import TxOp


@pytest.fixture
def manager(store, registry):
    return BackupRollbackManager(store, registry, restore_batch_size=2)


class TestChecksum:
    def test_order_independent(self, orders):
        shuffled = [dict(reversed(list(r.items()))) for r in reversed(orders)]
        assert calculate_checksum(orders) == calculate_checksum(shuffled)

    def test_detects_change(self, orders):
        changed = [dict(r) for r in orders]
        changed[1]["total"] = 23
        assert calculate_checksum(orders) != calculate_checksum(changed)

    def test_empty(self):
        assert calculate_checksum([]) == calculate_checksum([])


class TestBackupRestore:
    @pytest.mark.asyncio
    async def test_create_backup(self, manager, orders):
        snapshot = await manager.create_backup("orders", version="1.2.0", description="before")

        assert snapshot.metadata.record_count == 3
        assert snapshot.metadata.version == "1.2.0"
        assert snapshot.metadata.checksum == calculate_checksum(orders)
        assert manager.get_backup("orders") is snapshot

    @pytest.mark.asyncio
    async def test_validation_blocks_backup(self, manager):
        with pytest.raises(ValidationFailed) as exc:
            await manager.create_backup("products")
        assert any("title" in e for e in exc.value.errors)
        assert manager.get_backup("products") is None

    @pytest.mark.asyncio
    async def test_backup_without_validation(self, manager):
        snapshot = await manager.create_backup("products", validate_integrity=False)
        assert snapshot.metadata.record_count == 3

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self, manager, store):
        await manager.create_backup("orders")
        await store.write("orders", "o1", {"total": 99})
        assert manager.get_backup("orders").records[0]["total"] == 11

    @pytest.mark.asyncio
    async def test_round_trip(self, manager, store, orders):
        await manager.create_backup("orders")
        await store.transact([
            TxOp.update("orders", "o1", {"total": 999}),
            TxOp.delete("orders", "o2"),
            TxOp.update("orders", "o4", {"storeId": "s1", "total": 1}),
        ])

        restored = await manager.restore_from_backup("orders")

        assert restored == 3
        assert sorted(store.records("orders"), key=lambda r: r["id"]) == orders

    @pytest.mark.asyncio
    async def test_restore_writes_in_batches(self, manager, store):
        await manager.create_backup("orders")
        store.transactions.clear()

        await manager.restore_from_backup("orders")

        # 3 deletes and 3 writes, 2 ops per transaction
        assert [len(t) for t in store.transactions] == [2, 1, 2, 1]

    @pytest.mark.asyncio
    async def test_restore_point(self, manager, store, orders):
        await manager.create_backup("orders")
        await store.write("orders", "o1", {"total": 500})

        await manager.restore_from_backup("orders")

        restore_point = manager.get_backup("orders", restore_point=True)
        assert restore_point.restore_point is True
        assert {r["id"]: r["total"] for r in restore_point.records}["o1"] == 500

        await manager.restore_from_backup("orders", from_restore_point=True, create_restore_point=False)
        assert store.get("orders", "o1")["total"] == 500

    @pytest.mark.asyncio
    async def test_no_backup(self, manager):
        with pytest.raises(NoBackupFound):
            await manager.restore_from_backup("orders")

        history = manager.get_rollback_history("orders")
        assert len(history) == 1
        assert history[0].success is False

    @pytest.mark.asyncio
    async def test_tampered_backup_refused(self, manager, store):
        await manager.create_backup("orders")
        manager.get_backup("orders").records[0]["total"] = 1000

        with pytest.raises(IntegrityCheckFailed):
            await manager.restore_from_backup("orders")

        assert store.get("orders", "o1")["total"] == 11
        assert manager.get_rollback_history("orders")[-1].success is False

    @pytest.mark.asyncio
    async def test_history_on_success(self, manager):
        await manager.create_backup("orders", version="2.0.0")
        await manager.restore_from_backup("orders")

        entry = manager.get_rollback_history("orders")[-1]
        assert entry.success is True
        assert entry.action == "restore"
        assert entry.version == "2.0.0"

    @pytest.mark.asyncio
    async def test_scoped_backup(self, manager, store):
        store.seed("orders", [{"id": "o9", "storeId": "s2", "orderNumber": "9", "referenceId": "r9", "subtotal": 1, "total": 1}])

        snapshot = await manager.create_backup("orders", scope="s2")

        assert snapshot.metadata.record_count == 1
        assert manager.get_backup("orders") is None


class TestVerify:
    @pytest.mark.asyncio
    async def test_valid(self, manager):
        await manager.create_backup("orders")
        verification = await manager.verify_backup("orders")
        assert verification.exists and verification.valid
        assert verification.issues == []

    @pytest.mark.asyncio
    async def test_missing(self, manager):
        verification = await manager.verify_backup("orders")
        assert verification.exists is False
        assert verification.valid is False

    @pytest.mark.asyncio
    async def test_live_drift(self, manager, store):
        await manager.create_backup("orders")
        await store.delete("orders", "o3")

        verification = await manager.verify_backup("orders")

        assert verification.valid is False
        assert any("live data" in issue for issue in verification.issues)
        assert (await manager.verify_backup("orders", compare_live=False)).valid

    @pytest.mark.asyncio
    async def test_tampered(self, manager):
        await manager.create_backup("orders")
        manager.get_backup("orders").records.pop()

        issues = (await manager.verify_backup("orders", compare_live=False)).issues

        assert any(i.startswith("Checksum mismatch") for i in issues)
        assert any(i.startswith("Record count mismatch") for i in issues)


class TestClearAndFiles:
    @pytest.mark.asyncio
    async def test_clear(self, manager):
        await manager.create_backup("orders")
        assert await manager.clear_backup("orders") is True
        assert manager.get_backup("orders") is None
        assert await manager.clear_backup("orders") is False

    @pytest.mark.asyncio
    async def test_clear_refuses_on_drift(self, manager, store):
        await manager.create_backup("orders")
        await store.write("orders", "o1", {"total": 50})

        assert await manager.clear_backup("orders") is False
        assert manager.get_backup("orders") is not None
        assert await manager.clear_backup("orders", force=True) is True

    @pytest.mark.asyncio
    async def test_export_import(self, manager, store, registry, tmp_path):
        await manager.create_backup("orders", version="3.0.0")
        path = tmp_path / "orders.json"
        manager.export_backup("orders", str(path))

        other = BackupRollbackManager(store, registry)
        snapshot = other.import_backup(str(path))

        assert snapshot.metadata.version == "3.0.0"
        assert snapshot.metadata.checksum == manager.get_backup("orders").metadata.checksum
        assert (await other.verify_backup("orders")).valid

    @pytest.mark.asyncio
    async def test_edited_export_fails_verification(self, manager, store, registry, tmp_path):
        await manager.create_backup("orders")
        path = tmp_path / "orders.json"
        manager.export_backup("orders", str(path))

        data = json.loads(path.read_text())
        data["records"][0]["total"] = 12345
        path.write_text(json.dumps(data))

        other = BackupRollbackManager(store, registry)
        other.import_backup(str(path))

        with pytest.raises(IntegrityCheckFailed):
            await other.restore_from_backup("orders")

    def test_export_without_backup(self, manager, tmp_path):
        with pytest.raises(NoBackupFound):
            manager.export_backup("orders", str(tmp_path / "x.json"))

    @pytest.mark.asyncio
    async def test_list_backups(self, manager):
        await manager.create_backup("orders")
        await manager.restore_from_backup("orders")
        backups = manager.list_backups()
        assert len(backups) == 2
        assert all("records" not in b for b in backups)
