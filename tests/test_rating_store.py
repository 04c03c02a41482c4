"""Tests for the Rating Store against a real (SQLite) database."""

import pytest
import sqlalchemy as sa
from structlog.testing import capture_logs

from taste_machine.errors import NftNotFound
from taste_machine.models.nft_rating import NftRating
from taste_machine.store.ratings import CandidateFilter


async def _set(session_factory, nft_id, **values):
    async with session_factory() as session, session.begin():
        await session.execute(sa.update(NftRating).where(NftRating.nft_id == nft_id).values(**values))


class TestRegister:
    async def test_new_nft_gets_default_state(self, service) -> None:
        row = await service.ratings.register("nft-1", "alpha", name="One", image_url="https://img/1.png")
        assert row.collection == "alpha"
        assert row.elo_mean == 1200
        assert row.elo_sigma == 400
        assert row.total_head_to_head_votes == 0
        assert row.slider_mean == 50
        assert row.slider_count == 0
        assert row.aesthetic_score is None

    async def test_reregister_keeps_rating_state(self, service, test_session_factory) -> None:
        await service.ratings.register("nft-1", "alpha", name="One")
        await _set(test_session_factory, "nft-1", elo_mean=1300.0)
        row = await service.ratings.register("nft-1", "alpha", name="Renamed")
        assert row.name == "Renamed"
        assert row.elo_mean == 1300

    async def test_collection_is_never_changed(self, service) -> None:
        await service.ratings.register("nft-1", "alpha")
        with capture_logs() as logs:
            row = await service.ratings.register("nft-1", "beta")
        assert row.collection == "alpha"
        assert any(e["event"] == "nft_collection_mismatch" for e in logs)


class TestReads:
    async def test_get_unknown_is_none(self, service) -> None:
        assert await service.ratings.get("missing") is None

    async def test_get_many(self, service, register_nfts) -> None:
        await register_nfts({"a": "alpha", "b": "alpha"})
        rows = await service.ratings.get_many(["a", "b", "zzz"])
        assert set(rows) == {"a", "b"}
        assert await service.ratings.get_many([]) == {}

    async def test_candidates_filter(self, service, register_nfts, test_session_factory) -> None:
        await register_nfts({"a": "alpha", "b": "alpha", "c": "beta", "d": "beta"})
        await _set(test_session_factory, "b", total_head_to_head_votes=10, wins=5, losses=5)

        rows = await service.ratings.get_candidates(CandidateFilter(collection="alpha"))
        assert {r.nft_id for r in rows} == {"a", "b"}

        rows = await service.ratings.get_candidates(CandidateFilter(max_votes=0, exclude_ids=frozenset({"c"})))
        assert {r.nft_id for r in rows} == {"a", "d"}

        rows = await service.ratings.get_candidates(CandidateFilter(min_votes=5))
        assert [r.nft_id for r in rows] == ["b"]

    async def test_candidates_limit_keeps_coldest(self, service, register_nfts, test_session_factory) -> None:
        await register_nfts({f"n{i}": "alpha" for i in range(6)})
        for i in range(1, 6):
            await _set(test_session_factory, f"n{i}", total_head_to_head_votes=i * 10, wins=i * 10, losses=0)
        rows = await service.ratings.get_candidates(CandidateFilter(limit=4))
        ids = [r.nft_id for r in rows]
        assert len(ids) == 4
        assert ids[:2] == ["n0", "n1"]
        assert len(set(ids)) == 4

    async def test_collections(self, service, register_nfts) -> None:
        await register_nfts({"a": "beta", "b": "alpha", "c": "alpha"})
        assert await service.ratings.collections() == ["alpha", "beta"]

    async def test_leaderboard_orders_by_score_then_estimate(
        self, service, register_nfts, test_session_factory
    ) -> None:
        await register_nfts({"a": "alpha", "b": "alpha", "c": "beta"})
        await service.ratings.publish_aesthetic_score("a", 90.0, 0.5)
        await _set(test_session_factory, "b", elo_mean=1300.0)
        await _set(test_session_factory, "c", elo_mean=800.0)
        rows = await service.ratings.leaderboard()
        assert [r.nft_id for r in rows] == ["a", "b", "c"]
        rows = await service.ratings.leaderboard(collection="beta")
        assert [r.nft_id for r in rows] == ["c"]

    async def test_leaderboard_estimate_is_clamped(self, service, register_nfts, test_session_factory) -> None:
        await register_nfts({"a-low": "alpha", "m-top": "alpha", "z-hi": "alpha"})
        await service.ratings.publish_aesthetic_score("m-top", 100.0, 1.0)
        # Above the band: estimate caps at 100 and ties with m-top.
        await _set(test_session_factory, "z-hi", elo_mean=1500.0)
        await _set(test_session_factory, "a-low", elo_mean=1350.0)
        rows = await service.ratings.leaderboard()
        assert [r.nft_id for r in rows] == ["m-top", "z-hi", "a-low"]

    async def test_candidates_per_collection(self, service, register_nfts, test_session_factory) -> None:
        await register_nfts({**{f"a{i}": "alpha" for i in range(10)}, "z": "beta"})
        await _set(test_session_factory, "z", total_head_to_head_votes=50, wins=25, losses=25)

        rows = await service.ratings.get_candidates_per_collection(CandidateFilter(limit=4))
        by_collection = {}
        for row in rows:
            by_collection.setdefault(row.collection, []).append(row.nft_id)
        assert by_collection["beta"] == ["z"]
        assert len(by_collection["alpha"]) == 2
        assert by_collection["alpha"][0] == "a0"

        rows = await service.ratings.get_candidates_per_collection(
            CandidateFilter(limit=4, exclude_ids=frozenset({"a0", "z"}))
        )
        ids = {r.nft_id for r in rows}
        assert "a1" in ids
        assert not ids & {"a0", "z"}


class TestWrites:
    async def test_elo_update_clamped(self, service, register_nfts) -> None:
        await register_nfts({"a": "alpha"})
        row = await service.ratings.apply_elo_update("a", 5000.0)
        assert row.elo_mean == 3000
        row = await service.ratings.apply_elo_update("a", -10000.0)
        assert row.elo_mean == 0

    async def test_slider_sample(self, service, register_nfts) -> None:
        await register_nfts({"a": "alpha"})
        await service.ratings.apply_slider_sample("a", 80.0)
        row = await service.ratings.apply_slider_sample("a", 60.0)
        assert row.slider_count == 2
        assert row.slider_mean == pytest.approx(70.0)
        assert row.slider_variance_accumulator == pytest.approx(200.0)

    async def test_publish_is_clamped(self, service, register_nfts) -> None:
        await register_nfts({"a": "alpha"})
        await service.ratings.publish_aesthetic_score("a", 130.0, 1.5)
        row = await service.ratings.get("a")
        assert row.aesthetic_score == 100
        assert row.aesthetic_confidence == 1
        assert row.last_scored_at is not None

    async def test_writes_to_unknown_nft(self, service) -> None:
        with pytest.raises(NftNotFound):
            await service.ratings.apply_elo_update("missing", 10.0)
