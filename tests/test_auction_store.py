import uuid
from datetime import datetime, timedelta, timezone

import pytest

from auction_service.db import crud
from auction_service.services import auctions
from auction_service.services.outbox_relay import relay_pending
from common.errors import Forbidden, NotFound, ValidationError

ATTRIBUTES = {
    "make": "test",
    "model": "testModel",
    "color": "test",
    "mileage": 10,
    "year": 10,
    "image_url": "testUrl",
    "reserve_price": 10,
}


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_returns_retrievable_record_with_fresh_id(self, auction_db, publisher):
        first = await auctions.create_auction(auction_db, publisher, dict(ATTRIBUTES), seller="bob")
        second = await auctions.create_auction(auction_db, publisher, dict(ATTRIBUTES), seller="bob")

        assert first.id != second.id
        fetched = await auctions.get_auction(auction_db, first.id)
        assert fetched.make == "test"
        assert fetched.seller == "bob"
        assert fetched.version == 1
        assert fetched.status == "Live"
        assert fetched.has_reserve_price()

    @pytest.mark.asyncio
    async def test_create_publishes_auction_created(self, auction_db, publisher, bus):
        auction = await auctions.create_auction(auction_db, publisher, dict(ATTRIBUTES), seller="bob")

        assert bus.topics() == ["auction-created"]
        event = bus.published[0]
        assert event.auction_id == auction.id
        assert event.version == 1
        assert event.auction.seller == "bob"

    @pytest.mark.asyncio
    async def test_create_defaults_auction_end(self, auction_db, publisher):
        auction = await auctions.create_auction(auction_db, publisher, dict(ATTRIBUTES), seller="bob")

        assert auction.auction_end is not None

    @pytest.mark.asyncio
    async def test_create_with_empty_make_fails_validation(self, auction_db, publisher, bus):
        with pytest.raises(ValidationError):
            await auctions.create_auction(auction_db, publisher, {**ATTRIBUTES, "make": ""}, seller="bob")

        assert bus.published == []

    @pytest.mark.asyncio
    async def test_create_with_negative_reserve_fails_validation(self, auction_db, publisher):
        with pytest.raises(ValidationError):
            await auctions.create_auction(auction_db, publisher, {**ATTRIBUTES, "reserve_price": -1}, seller="bob")


class TestGetAndList:

    @pytest.mark.asyncio
    async def test_get_unknown_id_raises_not_found(self, auction_db):
        with pytest.raises(NotFound):
            await auctions.get_auction(auction_db, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_list_is_restartable_and_filterable(self, auction_db):
        assert await crud.seed_auctions(auction_db) == 3

        listing = [a.make async for a in auctions.list_auctions(auction_db)]
        again = [a.make async for a in auctions.list_auctions(auction_db)]
        bobs = [a.model async for a in auctions.list_auctions(auction_db, seller="bob")]

        assert listing == ["Bugatti", "Ford", "Ford"]
        assert again == listing
        assert bobs == ["GT", "Mustang"]

    @pytest.mark.asyncio
    async def test_list_updated_after(self, auction_db, publisher):
        await crud.seed_auctions(auction_db)
        cutoff = datetime.now(timezone.utc) + timedelta(seconds=1)
        gt_id = crud.SEED_AUCTIONS[0]["id"]
        auction = await crud.get_auction(auction_db, gt_id)
        auction.updated_at = cutoff + timedelta(minutes=1)
        await crud.commit(auction_db)

        changed = [a.id async for a in auctions.list_auctions(auction_db, updated_after=cutoff)]

        assert changed == [gt_id]

    @pytest.mark.asyncio
    async def test_seed_is_skipped_when_table_has_rows(self, auction_db):
        await crud.seed_auctions(auction_db)

        assert await crud.seed_auctions(auction_db) == 0


class TestUpdate:

    @pytest.mark.asyncio
    async def test_update_by_owner_applies_patch_and_bumps_version(self, auction_db, publisher, bus):
        auction = await auctions.create_auction(auction_db, publisher, dict(ATTRIBUTES), seller="bob")

        updated = await auctions.update_auction(auction_db, publisher, auction.id, "bob", {"make": "Updated"})

        assert updated.make == "Updated"
        assert updated.model == "testModel"
        assert updated.version == 2
        assert bus.topics() == ["auction-created", "auction-updated"]
        assert bus.published[-1].version == 2
        assert bus.published[-1].auction.make == "Updated"

    @pytest.mark.asyncio
    async def test_update_cannot_change_seller(self, auction_db, publisher):
        auction = await auctions.create_auction(auction_db, publisher, dict(ATTRIBUTES), seller="bob")

        updated = await auctions.update_auction(auction_db, publisher, auction.id, "bob", {"seller": "mallory"})

        assert updated.seller == "bob"

    @pytest.mark.asyncio
    async def test_update_by_non_owner_is_forbidden_even_with_invalid_patch(self, auction_db, publisher, bus):
        auction = await auctions.create_auction(auction_db, publisher, dict(ATTRIBUTES), seller="bob")

        with pytest.raises(Forbidden):
            await auctions.update_auction(auction_db, publisher, auction.id, "notbob", {"make": ""})

        assert bus.topics() == ["auction-created"]

    @pytest.mark.asyncio
    async def test_update_unknown_id_is_not_found_before_ownership(self, auction_db, publisher):
        with pytest.raises(NotFound):
            await auctions.update_auction(auction_db, publisher, uuid.uuid4(), "anyone", {"make": "x"})

    @pytest.mark.asyncio
    async def test_update_by_owner_with_invalid_patch_fails_validation(self, auction_db, publisher):
        auction = await auctions.create_auction(auction_db, publisher, dict(ATTRIBUTES), seller="bob")

        with pytest.raises(ValidationError):
            await auctions.update_auction(auction_db, publisher, auction.id, "bob", {"reserve_price": -5})

    @pytest.mark.asyncio
    async def test_update_with_mistyped_patch_checks_ownership_first(self, auction_db, publisher, bus):
        auction = await auctions.create_auction(auction_db, publisher, dict(ATTRIBUTES), seller="bob")

        with pytest.raises(Forbidden):
            await auctions.update_auction(auction_db, publisher, auction.id, "notbob", {"mileage": "lots"})
        with pytest.raises(ValidationError, match="mileage"):
            await auctions.update_auction(auction_db, publisher, auction.id, "bob", {"mileage": "lots"})

        assert bus.topics() == ["auction-created"]

    @pytest.mark.asyncio
    async def test_reserve_price_invariant_holds_across_updates(self, auction_db, publisher):
        auction = await auctions.create_auction(auction_db, publisher, dict(ATTRIBUTES), seller="bob")
        assert auction.has_reserve_price() == (auction.reserve_price > 0)

        auction = await auctions.update_auction(auction_db, publisher, auction.id, "bob", {"reserve_price": 0})
        assert auction.has_reserve_price() is False

        auction = await auctions.update_auction(auction_db, publisher, auction.id, "bob", {"reserve_price": 5})
        assert auction.has_reserve_price() is True


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_by_owner_removes_and_publishes(self, auction_db, publisher, bus):
        auction = await auctions.create_auction(auction_db, publisher, dict(ATTRIBUTES), seller="bob")

        await auctions.delete_auction(auction_db, publisher, auction.id, "bob")

        with pytest.raises(NotFound):
            await auctions.get_auction(auction_db, auction.id)
        deleted = bus.published[-1]
        assert deleted.topic == "auction-deleted"
        assert deleted.version == 2
        assert deleted.auction.make == "test"

    @pytest.mark.asyncio
    async def test_delete_by_non_owner_is_forbidden(self, auction_db, publisher):
        auction = await auctions.create_auction(auction_db, publisher, dict(ATTRIBUTES), seller="bob")

        with pytest.raises(Forbidden):
            await auctions.delete_auction(auction_db, publisher, auction.id, "notbob")

        assert (await auctions.get_auction(auction_db, auction.id)).seller == "bob"

    @pytest.mark.asyncio
    async def test_delete_unknown_id_is_not_found(self, auction_db, publisher):
        with pytest.raises(NotFound):
            await auctions.delete_auction(auction_db, publisher, uuid.uuid4(), "bob")


class TestPublishFailure:

    @pytest.mark.asyncio
    async def test_failed_publish_keeps_mutation_and_queues_outbox(self, auction_db, publisher, bus):
        bus.fail_publish = True

        auction = await auctions.create_auction(auction_db, publisher, dict(ATTRIBUTES), seller="bob")

        assert (await auctions.get_auction(auction_db, auction.id)).make == "test"
        pending = await crud.get_pending_outbox_messages(auction_db)
        assert [m.topic for m in pending] == ["auction-created"]
        assert "redis is down" in pending[0].last_error

    @pytest.mark.asyncio
    async def test_relay_publishes_outbox_once_bus_recovers(self, auction_db, publisher, bus):
        bus.fail_publish = True
        auction = await auctions.create_auction(auction_db, publisher, dict(ATTRIBUTES), seller="bob")
        await auctions.update_auction(auction_db, publisher, auction.id, "bob", {"color": "Red"})

        assert await relay_pending(auction_db, bus) == 0
        pending = await crud.get_pending_outbox_messages(auction_db)
        assert pending[0].attempts == 2

        bus.fail_publish = False
        assert await relay_pending(auction_db, bus) == 2

        assert bus.topics() == ["auction-created", "auction-updated"]
        assert [e.version for e in bus.published] == [1, 2]
        assert await crud.get_pending_outbox_messages(auction_db) == []

    @pytest.mark.asyncio
    async def test_relay_skips_unreadable_outbox_message(self, auction_db, publisher, bus):
        await crud.add_outbox_message(auction_db, "auction-created", "not json", "redis is down")
        bus.fail_publish = True
        await auctions.create_auction(auction_db, publisher, dict(ATTRIBUTES), seller="bob")
        bus.fail_publish = False

        assert await relay_pending(auction_db, bus) == 1

        assert bus.topics() == ["auction-created"]
        pending = await crud.get_pending_outbox_messages(auction_db)
        assert [m.payload for m in pending] == ["not json"]
        assert pending[0].attempts == 2
