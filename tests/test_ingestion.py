"""Tests for the ingestion gateway (votes, sliders, fires)."""

import asyncio
import math

import pytest
from structlog.testing import capture_logs

from taste_machine.engine.recent_pairs import pair_key
from taste_machine.errors import InvalidSlider, InvalidVote, NftNotFound, ValidationFailed


@pytest.fixture
async def pair(register_nfts):
    await register_nfts({"a": "alpha", "b": "alpha"})
    return "a", "b"


class TestVotes:
    async def test_two_fresh_nfts(self, service, pair) -> None:
        receipt = await service.gateway.record_vote("voter-1", "a", "b", winner_id="a", event_id="v1")
        assert receipt.event_id == "v1"
        assert receipt.duplicate is False
        assert receipt.elo_delta_a == pytest.approx(16.0)
        assert receipt.elo_delta_b == pytest.approx(-16.0)

        rows = await service.ratings.get_many(["a", "b"])
        assert rows["a"].elo_mean == pytest.approx(1216.0)
        assert rows["b"].elo_mean == pytest.approx(1184.0)
        for row in rows.values():
            assert row.elo_sigma == pytest.approx(380.0)
            assert row.total_head_to_head_votes == 1
        assert (rows["a"].wins, rows["a"].losses) == (1, 0)
        assert (rows["b"].wins, rows["b"].losses) == (0, 1)

        vote = await service.events.get_vote("v1")
        assert (vote.elo_pre_a, vote.elo_pre_b) == (1200.0, 1200.0)

    async def test_marks_both_dirty_and_records_pair(self, service, pair) -> None:
        await service.gateway.record_vote("voter-1", "a", "b", winner_id="b")
        for nft_id in pair:
            marker = await service.dirty.get(nft_id)
            assert marker.reason == "new_vote"
        assert service.tracker.was_shown_recently(pair_key("b", "a"))

    async def test_super_vote_doubles_movement(self, service, pair) -> None:
        receipt = await service.gateway.record_vote("voter-1", "a", "b", "b", vote_weight="super")
        assert receipt.elo_delta_b == pytest.approx(32.0)
        marker = await service.dirty.get("a")
        assert marker.priority == service.config.recompute.priorities.super_vote

    async def test_generates_event_id(self, service, pair) -> None:
        receipt = await service.gateway.record_vote("voter-1", "a", "b", "a")
        assert receipt.event_id
        assert await service.events.get_vote(receipt.event_id) is not None

    async def test_resubmission_is_a_noop(self, service, pair) -> None:
        first = await service.gateway.record_vote("voter-1", "a", "b", "a", event_id="v1")
        again = await service.gateway.record_vote("voter-1", "a", "b", "a", event_id="v1")
        assert again.duplicate is True
        assert again.elo_delta_a == pytest.approx(first.elo_delta_a)

        row = await service.ratings.get("a")
        assert row.elo_mean == pytest.approx(1216.0)
        assert row.total_head_to_head_votes == 1
        assert len(await service.events.votes_for("a")) == 1

    async def test_event_id_reused_for_other_pair(self, service, register_nfts, pair) -> None:
        await register_nfts({"c": "alpha"})
        await service.gateway.record_vote("voter-1", "a", "b", "a", event_id="v1")
        with capture_logs() as logs:
            receipt = await service.gateway.record_vote("voter-1", "a", "c", "c", event_id="v1")
        assert receipt.duplicate is True
        assert any(e["event"] == "event_id_reused" for e in logs)
        assert (await service.ratings.get("c")).total_head_to_head_votes == 0

    @pytest.mark.parametrize(
        ("kwargs", "reason"),
        [
            ({"voter_id": "v", "nft_a_id": "a", "nft_b_id": "a", "winner_id": "a"}, "self_matchup"),
            ({"voter_id": "v", "nft_a_id": "a", "nft_b_id": "b", "winner_id": "c"}, "winner_not_in_pair"),
            (
                {"voter_id": "v", "nft_a_id": "a", "nft_b_id": "b", "winner_id": "a", "vote_weight": "mega"},
                "invalid_vote_weight",
            ),
            ({"voter_id": " ", "nft_a_id": "a", "nft_b_id": "b", "winner_id": "a"}, "missing_voter"),
            (
                {"voter_id": "v", "nft_a_id": "a", "nft_b_id": "b", "winner_id": "a", "event_id": "x" * 65},
                "invalid_event_id",
            ),
        ],
    )
    async def test_invalid_votes_record_nothing(self, service, pair, kwargs, reason) -> None:
        with pytest.raises(InvalidVote) as exc_info:
            await service.gateway.record_vote(**kwargs)
        assert exc_info.value.reason == reason
        assert await service.events.votes_for("a") == []
        assert (await service.ratings.get("a")).elo_mean == 1200
        assert await service.dirty.get("a") is None

    async def test_unknown_nft(self, service, pair) -> None:
        with pytest.raises(NftNotFound):
            await service.gateway.record_vote("voter-1", "a", "ghost", "a", event_id="v1")
        assert await service.events.get_vote("v1") is None
        assert (await service.ratings.get("a")).total_head_to_head_votes == 0

    async def test_concurrent_votes_are_serialized(self, service, pair) -> None:
        await asyncio.gather(
            *(
                service.gateway.record_vote(f"voter-{i}", "a", "b", "a" if i % 3 else "b", event_id=f"v{i}")
                for i in range(10)
            )
        )
        rows = await service.ratings.get_many(pair)
        for row in rows.values():
            assert row.total_head_to_head_votes == 10
            assert row.wins + row.losses == 10
        assert rows["a"].elo_mean + rows["b"].elo_mean == pytest.approx(2400.0)


class TestSliders:
    async def test_running_stats(self, service, pair) -> None:
        await service.gateway.record_slider("voter-1", "a", 80.0)
        await service.gateway.record_slider("voter-2", "a", 60.0)
        row = await service.ratings.get("a")
        assert row.slider_count == 2
        assert row.slider_mean == pytest.approx(70.0)
        assert row.slider_variance_accumulator == pytest.approx(200.0)
        assert [e.raw_score for e in await service.events.sliders_for("a")] == [80.0, 60.0]
        marker = await service.dirty.get("a")
        assert marker.reason == "new_slider"
        assert service.tracker.was_shown_recently(pair_key("a"))

    @pytest.mark.parametrize("score", [-0.5, 100.5, math.nan, math.inf])
    async def test_out_of_range(self, service, pair, score) -> None:
        with pytest.raises(InvalidSlider) as exc_info:
            await service.gateway.record_slider("voter-1", "a", score)
        assert exc_info.value.reason == "score_out_of_range"
        assert (await service.ratings.get("a")).slider_count == 0

    async def test_bounds_are_inclusive(self, service, pair) -> None:
        await service.gateway.record_slider("voter-1", "a", 0.0)
        await service.gateway.record_slider("voter-1", "a", 100.0)
        assert (await service.ratings.get("a")).slider_count == 2

    async def test_duplicate(self, service, pair) -> None:
        await service.gateway.record_slider("voter-1", "a", 80.0, event_id="s1")
        receipt = await service.gateway.record_slider("voter-1", "a", 20.0, event_id="s1")
        assert receipt.duplicate is True
        row = await service.ratings.get("a")
        assert (row.slider_count, row.slider_mean) == (1, pytest.approx(80.0))

    async def test_unknown_nft(self, service) -> None:
        with pytest.raises(NftNotFound):
            await service.gateway.record_slider("voter-1", "ghost", 50.0)


class TestFires:
    async def test_counts_and_marks(self, service, pair) -> None:
        await service.gateway.record_fire("voter-1", "a", event_id="f1")
        await service.gateway.record_fire("voter-2", "a")
        assert (await service.ratings.get("a")).fire_count == 2
        assert await service.events.fire_count("a") == 2
        marker = await service.dirty.get("a")
        assert (marker.reason, marker.priority) == ("new_fire", service.config.recompute.priorities.fire)

    async def test_duplicate(self, service, pair) -> None:
        await service.gateway.record_fire("voter-1", "a", event_id="f1")
        receipt = await service.gateway.record_fire("voter-1", "a", event_id="f1")
        assert receipt.duplicate is True
        assert (await service.ratings.get("a")).fire_count == 1

    async def test_missing_voter(self, service, pair) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            await service.gateway.record_fire("", "a")
        assert exc_info.value.reason == "missing_voter"
