"""Tests for the record store and transaction repository."""

import asyncio
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from deposit_reconciler.ledger.models import NATURAL_KEY
from deposit_reconciler.storage.database import DatabaseManager
from deposit_reconciler.storage.repos import (
    BatchResult,
    TransactionRepository,
    validate_key_fields,
)
from deposit_reconciler.storage.store import RecordStore, StoreWriteError

# ============================================================================
# Key field validation Tests
# ============================================================================


class TestValidateKeyFields:
    """Tests for validate_key_fields."""

    def test_natural_key(self) -> None:
        assert validate_key_fields(NATURAL_KEY) == frozenset({"txid", "vout"})

    def test_empty(self) -> None:
        with pytest.raises(ValueError, match="at least one"):
            validate_key_fields([])

    def test_unknown_field(self) -> None:
        with pytest.raises(ValueError, match="blockhash"):
            validate_key_fields({"txid", "blockhash"})


# ============================================================================
# RecordStore upsert Tests
# ============================================================================


class TestRecordStoreUpsert:
    """Tests for RecordStore.upsert_many."""

    @pytest.mark.asyncio
    async def test_inserts_new_records(self, store: RecordStore, make_record) -> None:
        records = [make_record(vout=0), make_record(vout=1)]

        result = await store.upsert_many(NATURAL_KEY, records)

        assert result == BatchResult(attempted=2, inserted=2)
        assert await store.count() == 2

    @pytest.mark.asyncio
    async def test_idempotent(self, store: RecordStore, make_record) -> None:
        records = [make_record(vout=0), make_record(vout=1, amount="0.00000001")]

        await store.upsert_many(NATURAL_KEY, records)
        first = await store.list_all()
        result = await store.upsert_many(NATURAL_KEY, records)

        assert result.replaced == 2
        assert result.inserted == 0
        assert await store.list_all() == first

    @pytest.mark.asyncio
    async def test_replaces_whole_record(self, store: RecordStore, make_record) -> None:
        await store.upsert_many(
            NATURAL_KEY, [make_record(confirmations=1, blockhash="old", label="stale")]
        )
        await store.upsert_many(NATURAL_KEY, [make_record(confirmations=7, blockhash="new")])

        record = await store.get_by_key("a" * 64, 0)
        assert record is not None
        assert record.confirmations == 7
        assert record.extra == {"blockhash": "new"}
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_amount_round_trips_exactly(self, store: RecordStore, make_record) -> None:
        await store.upsert_many(NATURAL_KEY, [make_record(amount="4.00000001")])

        record = await store.get_by_key("a" * 64, 0)
        assert record is not None
        assert record.amount == Decimal("4.00000001")

    @pytest.mark.asyncio
    async def test_empty_batch(self, store: RecordStore) -> None:
        result = await store.upsert_many(NATURAL_KEY, [])

        assert result.attempted == 0
        assert result.ok
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_invalid_key_fields_write_nothing(self, store: RecordStore, make_record) -> None:
        with pytest.raises(ValueError):
            await store.upsert_many({"nope"}, [make_record()])
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_ordered_abort_commits_prefix(self, store: RecordStore, make_record) -> None:
        # Keyed by address, the second record inserts a duplicate (txid, vout).
        records = [
            make_record(address="addr-1"),
            make_record(address="addr-2"),
            make_record(txid="b" * 64, address="addr-3"),
        ]

        with pytest.raises(StoreWriteError) as exc_info:
            await store.upsert_many({"address"}, records)

        result = exc_info.value.result
        assert result.failed_index == 1
        assert result.inserted == 1
        assert result.applied == 1
        assert not result.ok

        stored = await store.list_all()
        assert [r.address for r in stored] == ["addr-1"]
        assert await store.get_by_key("b" * 64, 0) is None

    @pytest.mark.asyncio
    async def test_non_natural_selector_replaces_first_match(
        self, store: RecordStore, make_record
    ) -> None:
        await store.upsert_many(
            NATURAL_KEY,
            [make_record(vout=0, address="shared"), make_record(vout=1, address="shared")],
        )

        result = await store.upsert_many(
            {"address"}, [make_record(vout=0, address="shared", confirmations=99)]
        )

        assert result.replaced == 1
        stored = await store.list_all()
        assert [(r.vout, r.confirmations) for r in stored] == [(0, 99), (1, 6)]

    @pytest.mark.asyncio
    async def test_out_of_range_amount_keeps_prefix(self, store: RecordStore, make_record) -> None:
        records = [make_record(vout=0), make_record(vout=1, amount="100000000000")]

        with pytest.raises(StoreWriteError) as exc_info:
            await store.upsert_many(NATURAL_KEY, records)

        assert exc_info.value.result.failed_index == 1
        assert "out of range" in exc_info.value.result.error
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_oversized_integer_keeps_prefix(self, store: RecordStore, make_record) -> None:
        records = [make_record(vout=0), make_record(vout=2**70)]

        with pytest.raises(StoreWriteError) as exc_info:
            await store.upsert_many(NATURAL_KEY, records)

        assert exc_info.value.result.failed_index == 1
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_extra_floats_are_stored(self, store: RecordStore, make_record) -> None:
        await store.upsert_many(NATURAL_KEY, [make_record(fee=-0.0001, blocktime=1627466110)])

        record = await store.get_by_key("a" * 64, 0)
        assert record is not None
        assert record.extra == {"fee": -0.0001, "blocktime": 1627466110}

    @pytest.mark.asyncio
    async def test_cancellation_rolls_back_batch(
        self, store: RecordStore, make_record, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        upsert_one = TransactionRepository._upsert_one
        calls = 0

        async def cancel_on_third(self, fields, record):
            nonlocal calls
            calls += 1
            if calls == 3:
                raise asyncio.CancelledError()
            return await upsert_one(self, fields, record)

        monkeypatch.setattr(TransactionRepository, "_upsert_one", cancel_on_third)
        records = [make_record(vout=i) for i in range(4)]

        with pytest.raises(asyncio.CancelledError):
            await store.upsert_many(NATURAL_KEY, records)

        monkeypatch.undo()
        assert calls == 3
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_unavailable_store(self, make_record) -> None:
        db = MagicMock(spec=DatabaseManager)
        db.get_async_session.side_effect = OperationalError("connect", {}, Exception("refused"))

        with pytest.raises(StoreWriteError) as exc_info:
            await RecordStore(db).upsert_many(NATURAL_KEY, [make_record()])

        assert exc_info.value.result.failed_index == 0
        assert exc_info.value.result.applied == 0


# ============================================================================
# TransactionRepository Tests
# ============================================================================


class TestTransactionRepository:
    """Tests for TransactionRepository against a single session."""

    @pytest.mark.asyncio
    async def test_get_by_key_not_found(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            assert await TransactionRepository(session).get_by_key("missing", 0) is None

    @pytest.mark.asyncio
    async def test_failure_leaves_prefix_pending(self, db: DatabaseManager, make_record) -> None:
        async with db.get_async_session() as session:
            repo = TransactionRepository(session)
            result = await repo.upsert_many(
                {"address"},
                [make_record(address="x"), make_record(address="y")],
            )

            assert result.failed_index == 1
            assert result.error
            assert await repo.count() == 1

    @pytest.mark.asyncio
    async def test_session_rolls_back_on_exception(self, db: DatabaseManager, make_record) -> None:
        with pytest.raises(RuntimeError):
            async with db.get_async_session() as session:
                await TransactionRepository(session).upsert_many(NATURAL_KEY, [make_record()])
                raise RuntimeError("interrupted")

        async with db.get_async_session() as session:
            assert await TransactionRepository(session).count() == 0
