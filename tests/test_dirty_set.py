"""Tests for the dirty-set tracker."""

import pytest

from taste_machine.store.dirty import mark_in_session, release_in_session


class TestMark:
    async def test_repeated_marks_collapse(self, service, register_nfts) -> None:
        await register_nfts({"a": "alpha"})
        await service.dirty.mark(["a", "a"], "new_vote", 0)
        await service.dirty.mark(["a"], "new_slider", 5)
        status = await service.dirty.status()
        assert status.dirty_count == 1

    async def test_keeps_highest_priority_and_its_reason(self, service, register_nfts) -> None:
        await register_nfts({"a": "alpha"})
        await service.dirty.mark(["a"], "new_slider", 5)
        first = await service.dirty.get("a")
        await service.dirty.mark(["a"], "new_vote", 0)
        marker = await service.dirty.get("a")
        assert (marker.priority, marker.reason) == (5, "new_slider")
        assert marker.enqueued_at == first.enqueued_at
        assert marker.last_event_at >= first.last_event_at

        await service.dirty.mark(["a"], "manual", 20)
        marker = await service.dirty.get("a")
        assert (marker.priority, marker.reason) == (20, "manual")

    async def test_unknown_reason(self, service) -> None:
        with pytest.raises(ValueError):
            await service.dirty.mark(["a"], "because", 0)


class TestClaimRelease:
    async def test_claim_order(self, service, register_nfts) -> None:
        await register_nfts({"a": "alpha", "b": "alpha", "c": "alpha"})
        await service.dirty.mark(["a"], "new_vote", 0)
        await service.dirty.mark(["b"], "new_vote", 0)
        await service.dirty.mark(["c"], "manual", 20)
        claimed = await service.dirty.claim(10)
        assert [m.nft_id for m in claimed] == ["c", "a", "b"]
        assert [m.nft_id for m in await service.dirty.claim(1)] == ["c"]

    async def test_claim_does_not_remove(self, service, register_nfts) -> None:
        await register_nfts({"a": "alpha"})
        await service.dirty.mark(["a"], "new_vote")
        await service.dirty.claim(10)
        assert (await service.dirty.status()).dirty_count == 1

    async def test_release_only_if_not_remarked(self, service, register_nfts, test_session_factory) -> None:
        await register_nfts({"a": "alpha", "b": "alpha"})
        await service.dirty.mark(["a", "b"], "new_vote")
        claimed = {m.nft_id: m for m in await service.dirty.claim(10)}

        # "b" gets a new event after the claim.
        async with test_session_factory() as session, session.begin():
            await mark_in_session(session, ["b"], "new_vote")

        async with test_session_factory() as session, session.begin():
            assert await release_in_session(session, claimed["a"]) is True
            assert await release_in_session(session, claimed["b"]) is False

        assert await service.dirty.get("a") is None
        assert await service.dirty.get("b") is not None


class TestStatus:
    async def test_empty(self, service) -> None:
        status = await service.dirty.status()
        assert status.dirty_count == 0
        assert status.high_priority_count == 0
        assert status.oldest_age_seconds is None

    async def test_counts(self, service, register_nfts) -> None:
        await register_nfts({"a": "alpha", "b": "alpha", "c": "alpha"})
        await service.dirty.mark(["a", "b"], "new_vote", 0)
        await service.dirty.mark(["c"], "new_fire", 15)
        status = await service.dirty.status()
        assert status.dirty_count == 3
        assert status.high_priority_count == 1
        assert status.oldest_age_seconds >= 0
