"""
Tests for channel mapping status rules and retry selection.
"""
import pytest

from catalog_sync.core.database import session_scope
from catalog_sync.models.channel_mapping import InvalidTransitionError, SyncStatus, ensure_transition
from catalog_sync.repositories import ChannelMappingRepository
from conftest import OWNER_ID, create_mapping, create_product


class TestTransitions:
    @pytest.mark.parametrize("status", ["pending", "syncing", "success", "error"])
    def test_new_mapping_may_start_anywhere_live(self, status):
        assert ensure_transition(None, status) == SyncStatus(status)

    def test_new_mapping_cannot_start_deleted(self):
        with pytest.raises(InvalidTransitionError):
            ensure_transition(None, SyncStatus.DELETED)

    @pytest.mark.parametrize("status", ["syncing", "success", "deleted"])
    def test_deleted_can_be_revived_by_sync(self, status):
        assert ensure_transition("deleted", status) == SyncStatus(status)

    @pytest.mark.parametrize("status", ["pending", "error"])
    def test_deleted_cannot_go_back_to_queue(self, status):
        with pytest.raises(InvalidTransitionError) as exc_info:
            ensure_transition("deleted", status)
        assert "deleted ->" in str(exc_info.value)

    def test_unknown_status_rejected(self):
        with pytest.raises(ValueError):
            ensure_transition("pending", "archived")


async def test_error_count_increments_and_resets(session_factory):
    product = await create_product(session_factory)

    await create_mapping(session_factory, product.id, SyncStatus.ERROR, error_message="first")
    mapping = await create_mapping(session_factory, product.id, SyncStatus.ERROR, error_message="second")
    assert mapping.error_count == 2
    assert mapping.error_message == "second"

    mapping = await create_mapping(session_factory, product.id, SyncStatus.SUCCESS, external_id="gid://shopify/Product/1")
    assert mapping.error_count == 0
    assert mapping.error_message is None
    assert mapping.last_synced is not None
    assert mapping.external_id == "gid://shopify/Product/1"


async def test_upsert_keeps_one_row_per_product(session_factory):
    product = await create_product(session_factory)

    first = await create_mapping(session_factory, product.id, SyncStatus.PENDING)
    second = await create_mapping(session_factory, product.id, SyncStatus.SYNCING)

    assert first.id == second.id
    assert second.sync_status == "syncing"


async def test_mark_deleted_keeps_row(session_factory):
    product = await create_product(session_factory)
    mapping = await create_mapping(session_factory, product.id, SyncStatus.SUCCESS, external_id="gid://shopify/Product/2")

    async with session_scope(session_factory) as session:
        repo = ChannelMappingRepository(session)
        mapping = await repo.get_for_product(product.id)
        mapping = await repo.mark_deleted(mapping, "Product deleted in Shopify")

    assert mapping.sync_status == "deleted"
    assert mapping.error_message == "Product deleted in Shopify"

    async with session_scope(session_factory) as session:
        assert await ChannelMappingRepository(session).get_by_external_id("gid://shopify/Product/2") is not None


async def test_needing_sync_respects_retry_ceiling(session_factory):
    pending = await create_product(session_factory, title="pending")
    retryable = await create_product(session_factory, title="retryable")
    exhausted = await create_product(session_factory, title="exhausted")
    synced = await create_product(session_factory, title="synced")

    await create_mapping(session_factory, pending.id, SyncStatus.PENDING)
    for _ in range(2):
        await create_mapping(session_factory, retryable.id, SyncStatus.ERROR, error_message="boom")
    for _ in range(3):
        await create_mapping(session_factory, exhausted.id, SyncStatus.ERROR, error_message="boom")
    await create_mapping(session_factory, synced.id, SyncStatus.SUCCESS)

    async with session_scope(session_factory) as session:
        mappings = await ChannelMappingRepository(session).get_needing_sync(OWNER_ID)

    assert {mapping.product_id for mapping in mappings} == {pending.id, retryable.id}


async def test_needing_sync_is_owner_scoped(session_factory):
    mine = await create_product(session_factory)
    theirs = await create_product(session_factory, owner_id="user_other")
    await create_mapping(session_factory, mine.id, SyncStatus.PENDING)
    await create_mapping(session_factory, theirs.id, SyncStatus.PENDING)

    async with session_scope(session_factory) as session:
        mappings = await ChannelMappingRepository(session).get_needing_sync(OWNER_ID)

    assert [mapping.product_id for mapping in mappings] == [mine.id]


async def test_status_counts_and_recent_errors(session_factory):
    for status in (SyncStatus.SUCCESS, SyncStatus.SUCCESS, SyncStatus.PENDING):
        product = await create_product(session_factory)
        await create_mapping(session_factory, product.id, status)
    failed = await create_product(session_factory)
    await create_mapping(session_factory, failed.id, SyncStatus.ERROR, error_message="Title can't be blank")

    async with session_scope(session_factory) as session:
        repo = ChannelMappingRepository(session)
        counts = await repo.status_counts(OWNER_ID)
        errors = await repo.recent_errors(OWNER_ID)

    assert counts == {"success": 2, "pending": 1, "error": 1}
    assert errors == ["Title can't be blank"]
