import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from circlerank.models.movie import AggregateScore, Movie, Rating, WeightPreference
from circlerank.models.restaurant import (
    Restaurant,
    RestaurantAggregateScore,
    RestaurantRating,
    RestaurantWeightPreference,
)
from circlerank.models.user import UserAccount
from circlerank.services import aggregates
from circlerank.services.aggregates import (
    calculate_user_aggregate_scores,
    calculate_user_restaurant_aggregate_scores,
    list_aggregate_scores,
    list_public_aggregate_scores,
    list_restaurant_aggregate_scores,
    summarize_group,
)


def _users(*ids: str, status: str = "ACTIVE") -> list[UserAccount]:
    return [UserAccount(id=uid, name=uid.upper(), email=f"{uid}@example.com", status=status) for uid in ids]


async def _seed(factory, *rows) -> None:
    async with factory() as db:
        db.add_all(rows)
        await db.commit()


async def _movie_rows(factory, user_id: str) -> dict[str, float]:
    async with factory() as db:
        rows = (
            await db.execute(select(AggregateScore).where(AggregateScore.user_id == user_id))
        ).scalars().all()
    return {row.movie_id: row.score for row in rows}


async def _restaurant_rows(factory, user_id: str) -> dict[str, RestaurantAggregateScore]:
    async with factory() as db:
        rows = (
            await db.execute(
                select(RestaurantAggregateScore).where(RestaurantAggregateScore.user_id == user_id)
            )
        ).scalars().all()
    return {row.restaurant_id: row for row in rows}


def test_movie_scores_are_friend_weighted(run_db) -> None:
    async def scenario(factory):
        await _seed(factory, *_users("u", "f1", "f2"))
        await _seed(
            factory,
            Movie(id="m", title="M", tmdb_id="1"),
            Movie(id="n", title="N", tmdb_id="2"),
            WeightPreference(user_id="u", friend_id="f1", weight=0.5),
            WeightPreference(user_id="u", friend_id="f2", weight=1.5),
            Rating(user_id="u", movie_id="m", score=10),
            Rating(user_id="f1", movie_id="m", score=6),
            Rating(user_id="f2", movie_id="m", score=8),
        )
        async with factory() as db:
            result = await calculate_user_aggregate_scores(db, "u")
        return result, await _movie_rows(factory, "u")

    result, rows = run_db(scenario)
    assert result.message == "Calculated scores for 1 movies."
    assert result.calculated == 1
    assert set(rows) == {"m"}
    assert rows["m"] == pytest.approx(25 / 3)


def test_no_preferences_clears_previous_scores(run_db) -> None:
    async def scenario(factory):
        await _seed(factory, *_users("u"))
        await _seed(
            factory,
            Movie(id="m", title="M", tmdb_id="1"),
            Rating(user_id="u", movie_id="m", score=9),
            AggregateScore(user_id="u", movie_id="m", score=7.5),
        )
        async with factory() as db:
            result = await calculate_user_aggregate_scores(db, "u")
        return result, await _movie_rows(factory, "u")

    result, rows = run_db(scenario)
    assert result.message == "No friends selected. Scores cleared."
    assert rows == {}


def test_recompute_replaces_rather_than_merges(run_db) -> None:
    async def scenario(factory):
        await _seed(factory, *_users("u", "f1", "f2"))
        await _seed(
            factory,
            Movie(id="m1", title="One", tmdb_id="1"),
            Movie(id="m2", title="Two", tmdb_id="2"),
            WeightPreference(user_id="u", friend_id="f1", weight=1.0),
            Rating(user_id="f1", movie_id="m1", score=6),
            Rating(user_id="f2", movie_id="m2", score=4),
        )
        async with factory() as db:
            await calculate_user_aggregate_scores(db, "u")
        first = await _movie_rows(factory, "u")

        async with factory() as db:
            pref = (
                await db.execute(select(WeightPreference).where(WeightPreference.friend_id == "f1"))
            ).scalar_one()
            pref.friend_id = "f2"
            await db.commit()
        async with factory() as db:
            await calculate_user_aggregate_scores(db, "u")
        return first, await _movie_rows(factory, "u")

    first, second = run_db(scenario)
    assert first == {"m1": 6.0}
    assert second == {"m2": 4.0}


def test_movie_nobody_rated_has_no_row(run_db) -> None:
    async def scenario(factory):
        await _seed(factory, *_users("u", "f"))
        await _seed(
            factory,
            Movie(id="n", title="N", tmdb_id="1"),
            WeightPreference(user_id="u", friend_id="f", weight=1.0),
        )
        async with factory() as db:
            result = await calculate_user_aggregate_scores(db, "u")
            listed = await list_aggregate_scores(db, "u")
        return result, listed

    result, listed = run_db(scenario)
    assert result.calculated == 0
    assert listed == []


def test_blank_user_id_is_rejected_before_any_query(run_db) -> None:
    async def scenario(factory):
        async with factory() as db:
            with pytest.raises(ValueError):
                await calculate_user_aggregate_scores(db, "")
            with pytest.raises(ValueError):
                await calculate_user_restaurant_aggregate_scores(db, "   ")

    run_db(scenario)


def test_restaurant_bootstrap_from_own_rating(run_db) -> None:
    async def scenario(factory):
        await _seed(factory, *_users("u", "f"))
        await _seed(
            factory,
            Restaurant(id="r", name="R"),
            RestaurantWeightPreference(user_id="u", friend_id="f", weight=1.0),
            RestaurantRating(user_id="u", restaurant_id="r", rating_type="VEG", score=7, availability="AVAILABLE"),
        )
        async with factory() as db:
            result = await calculate_user_restaurant_aggregate_scores(db, "u")
        return result, await _restaurant_rows(factory, "u")

    result, rows = run_db(scenario)
    assert result.success is True
    assert result.message == "Calculated scores for 1 restaurants."
    row = rows["r"]
    assert row.veg_score == 7
    assert row.veg_count == 1
    assert row.non_veg_score is None
    assert row.non_veg_count == 0
    assert row.confidence == 0.2


def test_pending_friend_is_not_counted(run_db) -> None:
    async def scenario(factory):
        await _seed(factory, *_users("u"), *_users("p", status="PENDING"))
        await _seed(
            factory,
            Restaurant(id="r", name="R"),
            RestaurantWeightPreference(user_id="u", friend_id="p", weight=1.0),
            RestaurantRating(user_id="p", restaurant_id="r", rating_type="NON_VEG", score=9, availability="AVAILABLE"),
        )
        async with factory() as db:
            result = await calculate_user_restaurant_aggregate_scores(db, "u")
        return result, await _restaurant_rows(factory, "u")

    result, rows = run_db(scenario)
    assert result.results == []
    assert result.message.startswith("No restaurant scores calculated.")
    assert rows == {}


def test_restaurant_weighted_tracks_and_confidence(run_db) -> None:
    async def scenario(factory):
        await _seed(factory, *_users("u", "a", "b"))
        await _seed(
            factory,
            Restaurant(id="r", name="R"),
            RestaurantWeightPreference(user_id="u", friend_id="a", weight=2.0),
            RestaurantWeightPreference(user_id="u", friend_id="b", weight=1.0),
            RestaurantRating(user_id="u", restaurant_id="r", rating_type="VEG", score=6, availability="AVAILABLE"),
            RestaurantRating(user_id="a", restaurant_id="r", rating_type="VEG", score=9, availability="AVAILABLE"),
            RestaurantRating(user_id="b", restaurant_id="r", rating_type="NON_VEG", score=5, availability="AVAILABLE"),
            RestaurantRating(
                user_id="a", restaurant_id="r", rating_type="NON_VEG", score=None, availability="NOT_AVAILABLE"
            ),
        )
        async with factory() as db:
            await calculate_user_restaurant_aggregate_scores(db, "u")
            return await list_restaurant_aggregate_scores(db, "u")

    [row] = run_db(scenario)
    assert row.veg_score == 8.0
    assert row.veg_count == 2
    assert row.non_veg_score == 5.0
    assert row.non_veg_count == 1
    assert row.confidence == 0.6


def test_restaurant_recompute_updates_in_place_and_clears_unscored(run_db) -> None:
    async def scenario(factory):
        await _seed(factory, *_users("u"))
        await _seed(
            factory,
            Restaurant(id="r1", name="One"),
            Restaurant(id="r2", name="Two"),
            RestaurantRating(user_id="u", restaurant_id="r1", rating_type="VEG", score=6, availability="AVAILABLE"),
            RestaurantRating(user_id="u", restaurant_id="r2", rating_type="VEG", score=4, availability="AVAILABLE"),
        )
        async with factory() as db:
            await calculate_user_restaurant_aggregate_scores(db, "u")
        first = await _restaurant_rows(factory, "u")

        async with factory() as db:
            r1 = (
                await db.execute(select(RestaurantRating).where(RestaurantRating.restaurant_id == "r1"))
            ).scalar_one()
            r1.score = 9
            r2 = (
                await db.execute(select(RestaurantRating).where(RestaurantRating.restaurant_id == "r2"))
            ).scalar_one()
            r2.availability = "NOT_AVAILABLE"
            r2.score = None
            await db.commit()
        async with factory() as db:
            await calculate_user_restaurant_aggregate_scores(db, "u")
        second = await _restaurant_rows(factory, "u")
        return first, second

    first, second = run_db(scenario)
    assert set(first) == {"r1", "r2"}
    assert set(second) == {"r1"}
    assert second["r1"].id == first["r1"].id
    assert second["r1"].veg_score == 9


def _failing_commit():
    async def commit() -> None:
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    return commit


def test_failed_movie_commit_keeps_previous_scores(run_db, monkeypatch) -> None:
    async def scenario(factory):
        await _seed(factory, *_users("u", "f"))
        await _seed(
            factory,
            Movie(id="m", title="M", tmdb_id="1"),
            Movie(id="n", title="N", tmdb_id="2"),
            WeightPreference(user_id="u", friend_id="f", weight=1.0),
            Rating(user_id="u", movie_id="m", score=8),
            Rating(user_id="f", movie_id="m", score=6),
        )
        async with factory() as db:
            await calculate_user_aggregate_scores(db, "u")
        before = await _movie_rows(factory, "u")

        await _seed(factory, Rating(user_id="f", movie_id="n", score=9))
        async with factory() as db:
            monkeypatch.setattr(db, "commit", _failing_commit())
            with pytest.raises(OperationalError):
                await calculate_user_aggregate_scores(db, "u")
        return before, await _movie_rows(factory, "u")

    before, after = run_db(scenario)
    assert before == {"m": 7.0}
    assert after == before
    assert aggregates._recompute_locks == {}


def test_failed_restaurant_commit_keeps_previous_scores(run_db, monkeypatch) -> None:
    async def scenario(factory):
        await _seed(factory, *_users("u"))
        await _seed(
            factory,
            Restaurant(id="r1", name="One"),
            Restaurant(id="r2", name="Two"),
            RestaurantRating(user_id="u", restaurant_id="r1", rating_type="VEG", score=6, availability="AVAILABLE"),
        )
        async with factory() as db:
            await calculate_user_restaurant_aggregate_scores(db, "u")

        await _seed(
            factory,
            RestaurantRating(user_id="u", restaurant_id="r2", rating_type="VEG", score=3, availability="AVAILABLE"),
        )
        async with factory() as db:
            monkeypatch.setattr(db, "commit", _failing_commit())
            with pytest.raises(OperationalError):
                await calculate_user_restaurant_aggregate_scores(db, "u")
        return await _restaurant_rows(factory, "u")

    rows = run_db(scenario)
    assert set(rows) == {"r1"}
    assert rows["r1"].veg_score == 6


def test_recompute_guard_serializes_one_user_and_forgets_idle_keys() -> None:
    order: list[str] = []

    async def hold(tag: str) -> None:
        async with aggregates._recompute_guard("movies", "u"):
            order.append(f"{tag}-in")
            await asyncio.sleep(0)
            order.append(f"{tag}-out")

    async def main() -> tuple[int, dict]:
        first = asyncio.create_task(hold("a"))
        second = asyncio.create_task(hold("b"))
        await asyncio.sleep(0)
        holders = aggregates._recompute_locks["movies:u"][1]
        await asyncio.gather(first, second)
        return holders, dict(aggregates._recompute_locks)

    holders, remaining = asyncio.run(main())
    assert holders == 2
    assert order == ["a-in", "a-out", "b-in", "b-out"]
    assert remaining == {}


def test_recompute_guard_is_released_when_the_body_fails() -> None:
    async def main() -> dict:
        with pytest.raises(RuntimeError):
            async with aggregates._recompute_guard("restaurants", "u"):
                raise RuntimeError("boom")
        return dict(aggregates._recompute_locks)

    assert asyncio.run(main()) == {}


def test_public_scores_ignore_pending_users(run_db) -> None:
    async def scenario(factory):
        await _seed(factory, *_users("a", "b"), *_users("p", status="PENDING"))
        await _seed(
            factory,
            Movie(id="m", title="M", tmdb_id="1"),
            Rating(user_id="a", movie_id="m", score=8),
            Rating(user_id="b", movie_id="m", score=7),
            Rating(user_id="p", movie_id="m", score=1),
        )
        async with factory() as db:
            return await list_public_aggregate_scores(db)

    [row] = run_db(scenario)
    assert row.movie_id == "m"
    assert row.score == 7.5
    assert row.user_count == 2


def test_group_summary_for_a_subset_of_users(run_db) -> None:
    async def scenario(factory):
        await _seed(factory, *_users("a", "b", "c"))
        await _seed(
            factory,
            Movie(id="m", title="Memento", tmdb_id="1", year=2000),
            Movie(id="n", title="Nope", tmdb_id="2"),
            Movie(id="o", title="Oldboy", tmdb_id="3"),
            Rating(user_id="b", movie_id="m", score=8),
            Rating(user_id="a", movie_id="m", score=7),
            Rating(user_id="c", movie_id="n", score=4),
        )
        async with factory() as db:
            group = await summarize_group(db, ["a", "b"])
            everyone = await summarize_group(db, [])
        return group, everyone

    group, everyone = run_db(scenario)
    [memento] = group
    assert memento.movie_id == "m"
    assert memento.year == 2000
    assert memento.score == 7.5
    assert memento.rating_count == 2
    assert [(r.user_name, r.score) for r in memento.ratings] == [("A", 7), ("B", 8)]

    assert [m.title for m in everyone] == ["Memento", "Nope", "Oldboy"]
    assert everyone[1].score == 4
    assert everyone[2].score is None
    assert everyone[2].rating_count == 0
