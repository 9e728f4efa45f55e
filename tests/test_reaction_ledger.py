"""Tests for the reaction ledger against a real SQLite database."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from postboard.config import ReactionsConfig, Settings
from postboard.db.models import CommentRelation, PostRelation, RelationKind
from postboard.db.services.reaction_ledger import (
    COMMENT_TARGET,
    POST_TARGET,
    ReactionLedger,
    ReactionPolicy,
    comment_ledger,
    post_ledger,
)
from postboard.lib import observability
from postboard.lib.exceptions import InvalidArgumentError, StorageFailureError, TargetNotFoundError
from postboard.lib.hooks import AFTER_REACTION_ADDED, AFTER_REACTION_REMOVED, hooks
from postboard.lib.keyed_lock import KeyedLocks, KeyedSingleFlight


async def _edge_count(session, relation, parent_id, kind):
    result = await session.execute(
        select(func.count())
        .select_from(relation)
        .where(relation.parent_id == parent_id, relation.path == kind)
    )
    return result.scalar_one()


@pytest.fixture
def ledger(db_session):
    return ReactionLedger(db_session, POST_TARGET)


@pytest.fixture
def comments(db_session):
    return ReactionLedger(db_session, COMMENT_TARGET)


class TestPostLikeToggle:
    """Like toggling on posts."""

    @pytest.mark.asyncio
    async def test_documented_scenario(self, ledger):
        """Two users liking post 7 follow the documented sequence."""
        first = await ledger.like(7, 1)
        assert (first.active, first.count) == (True, 1)
        assert first.message == "Post liked successfully"

        second = await ledger.like(7, 1)
        assert (second.active, second.count) == (False, 0)
        assert second.message == "Post unliked successfully"

        third = await ledger.like(7, 2)
        assert (third.active, third.count) == (True, 1)

        assert await ledger.is_liked_by_user(7, 1) is False
        assert await ledger.is_liked_by_user(7, 2) is True

    @pytest.mark.asyncio
    async def test_toggle_twice_restores_state(self, ledger):
        """Two likes by the same user return to the original count."""
        await ledger.like(7, 2)
        before = await ledger.count_reactions(7, RelationKind.LIKED_BY)

        await ledger.like(7, 3)
        result = await ledger.like(7, 3)

        assert result.active is False
        assert result.count == before
        assert await ledger.is_liked_by_user(7, 3) is False

    @pytest.mark.asyncio
    async def test_count_matches_live_edges(self, ledger, db_session):
        for user_id in (1, 2, 3):
            await ledger.like(7, user_id)
        await ledger.like(7, 2)

        live = await _edge_count(db_session, PostRelation, 7, RelationKind.LIKED_BY)
        assert live == 2
        assert await ledger.count_reactions(7, RelationKind.LIKED_BY) == live

    @pytest.mark.asyncio
    async def test_missing_post_raises_not_found(self, ledger):
        """Liking post 999999 is NotFound, not a storage failure."""
        with pytest.raises(TargetNotFoundError) as exc_info:
            await ledger.like(999999, 1)
        assert str(exc_info.value) == "Post not found"

    @pytest.mark.asyncio
    async def test_string_ids_are_coerced(self, ledger):
        result = await ledger.like("7", "1")
        assert result.active is True
        assert await ledger.is_liked_by_user(7, 1) is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id", [None, "", "abc", True])
    async def test_invalid_user_id_rejected(self, ledger, user_id):
        with pytest.raises(InvalidArgumentError):
            await ledger.like(7, user_id)

    @pytest.mark.asyncio
    async def test_tags_is_not_a_reaction_kind(self, ledger):
        with pytest.raises(InvalidArgumentError, match="Not a reaction kind: tags"):
            await ledger.toggle(7, 1, RelationKind.TAGS)

    def test_reaction_kinds(self):
        assert RelationKind.LIKED_BY.is_reaction
        assert RelationKind.DISLIKED_BY.is_reaction
        assert not RelationKind.TAGS.is_reaction


class TestPostUnlike:
    """Forcing the like edge absent."""

    @pytest.mark.asyncio
    async def test_unlike_removes_edge(self, ledger):
        await ledger.like(7, 1)
        await ledger.like(7, 2)

        result = await ledger.unlike(7, 1)

        assert result.removed is True
        assert result.count == 1
        assert result.message == "Post unliked successfully"
        assert await ledger.is_liked_by_user(7, 1) is False

    @pytest.mark.asyncio
    async def test_unlike_absent_edge_is_noop(self, ledger):
        await ledger.like(7, 2)

        result = await ledger.unlike(7, 1)

        assert result.removed is False
        assert result.count == 1
        assert result.message == "Post was not liked by this user"

    @pytest.mark.asyncio
    async def test_unlike_missing_post_is_noop(self, ledger):
        """Posts are not existence-checked on unlike."""
        result = await ledger.unlike(999999, 1)
        assert result.removed is False
        assert result.count == 0


class TestDislike:
    """Dislikes and their interaction with likes."""

    @pytest.mark.asyncio
    async def test_dislike_is_independent_by_default(self, ledger):
        await ledger.like(7, 1)
        result = await ledger.dislike(7, 1)

        assert result.active is True
        assert result.count == 1
        assert result.message == "Post disliked successfully"
        assert await ledger.is_liked_by_user(7, 1) is True

    @pytest.mark.asyncio
    async def test_dislike_toggles_off(self, ledger):
        await ledger.dislike(7, 1)
        result = await ledger.dislike(7, 1)

        assert result.active is False
        assert result.count == 0
        assert result.message == "Post undisliked successfully"

    @pytest.mark.asyncio
    async def test_mutually_exclusive_policy_removes_opposite(self, db_session):
        ledger = ReactionLedger(db_session, POST_TARGET, ReactionPolicy(mutually_exclusive=True))
        await ledger.like(7, 1)

        result = await ledger.dislike(7, 1)

        assert result.active is True
        assert await ledger.is_liked_by_user(7, 1) is False
        assert await ledger.count_reactions(7, RelationKind.LIKED_BY) == 0

        await ledger.like(7, 1)
        assert await ledger.count_reactions(7, RelationKind.DISLIKED_BY) == 0


class TestCommentReactions:
    """Comments skip the existence check on toggle but not on unlike."""

    @pytest.mark.asyncio
    async def test_like_comment(self, comments):
        result = await comments.like(11, 1)
        assert (result.active, result.count) == (True, 1)
        assert result.message == "Comment liked successfully"

    @pytest.mark.asyncio
    async def test_toggle_missing_comment_not_validated(self, comments):
        result = await comments.like(999999, 1)
        assert result.active is True

    @pytest.mark.asyncio
    async def test_unlike_missing_comment_raises(self, comments):
        with pytest.raises(TargetNotFoundError) as exc_info:
            await comments.unlike(999999, 1)
        assert str(exc_info.value) == "Comment not found"

    @pytest.mark.asyncio
    async def test_validating_policy_from_settings(self, db_session):
        settings = Settings(reactions=ReactionsConfig(validate_comment_on_toggle=True))
        ledger = comment_ledger(db_session, settings)
        with pytest.raises(TargetNotFoundError):
            await ledger.like(999999, 1)

    @pytest.mark.asyncio
    async def test_comment_edges_live_in_comment_table(self, comments, db_session):
        await comments.dislike(11, 3)
        assert await _edge_count(db_session, CommentRelation, 11, RelationKind.DISLIKED_BY) == 1
        assert await _edge_count(db_session, PostRelation, 11, RelationKind.DISLIKED_BY) == 0


class TestQueries:
    """Point lookups, batched counts and reactor lists."""

    @pytest.mark.asyncio
    async def test_list_reactors_oldest_first(self, ledger):
        await ledger.like(7, 2)
        await ledger.like(7, 1)

        reactors = await ledger.list_reactors(7)

        assert [r.user_id for r in reactors] == [2, 1]
        data = reactors[0].to_dict()
        assert data["userId"] == 2
        assert data["user"]["full_name"] == "Alan Turing"

    @pytest.mark.asyncio
    async def test_counts_for_fills_missing_targets(self, comments):
        await comments.like(11, 1)
        await comments.like(11, 2)

        counts = await comments.counts_for([11, 12], RelationKind.LIKED_BY)

        assert counts == {11: 2, 12: 0}

    @pytest.mark.asyncio
    async def test_counts_for_empty(self, comments):
        assert await comments.counts_for([], RelationKind.LIKED_BY) == {}


class TestConcurrency:
    """Serialization and uniqueness-conflict handling."""

    @pytest.mark.asyncio
    async def test_concurrent_likes_leave_one_edge(self, session_maker, seeded):
        flights = KeyedSingleFlight()
        locks = KeyedLocks()
        async with session_maker() as s1, session_maker() as s2:
            l1 = ReactionLedger(s1, POST_TARGET, flights=flights, locks=locks)
            l2 = ReactionLedger(s2, POST_TARGET, flights=flights, locks=locks)

            r1, r2 = await asyncio.gather(l1.like(7, 1), l2.like(7, 1))

            assert r1 == r2
            assert r1.active is True
            assert await _edge_count(s1, PostRelation, 7, RelationKind.LIKED_BY) == 1
        assert len(flights) == 0
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_uniqueness_conflict_converges(self, ledger, db_session, clean_hooks):
        """A concurrent writer inserting first is reported as the same transition."""
        await ledger.like(7, 1)
        added = AsyncMock()
        hooks.add_action(AFTER_REACTION_ADDED, added)

        # First read misses the edge, the re-read after the conflict finds it
        with patch.object(ledger, "_find_edge_id", AsyncMock(side_effect=[None, 1])):
            result = await ledger.like(7, 1)

        assert result.active is True
        assert result.count == 1
        added.assert_not_awaited()
        assert await _edge_count(db_session, PostRelation, 7, RelationKind.LIKED_BY) == 1

    @pytest.mark.asyncio
    async def test_unexplained_integrity_error_raises(self, ledger):
        await ledger.like(7, 1)

        with patch.object(ledger, "_find_edge_id", AsyncMock(side_effect=[None, None])):
            with pytest.raises(StorageFailureError):
                await ledger.like(7, 1)

        assert await ledger.is_liked_by_user(7, 1) is True

    @pytest.mark.asyncio
    async def test_concurrent_like_and_dislike_keep_one_edge(self, session_maker, seeded):
        """Under mutual exclusion a racing like and dislike never both survive."""
        flights = KeyedSingleFlight()
        locks = KeyedLocks()
        policy = ReactionPolicy(mutually_exclusive=True)
        async with session_maker() as s1, session_maker() as s2:
            l1 = ReactionLedger(s1, POST_TARGET, policy, flights=flights, locks=locks)
            l2 = ReactionLedger(s2, POST_TARGET, policy, flights=flights, locks=locks)

            await asyncio.gather(l1.like(7, 1), l2.dislike(7, 1))

            likes = await _edge_count(s1, PostRelation, 7, RelationKind.LIKED_BY)
            dislikes = await _edge_count(s1, PostRelation, 7, RelationKind.DISLIKED_BY)
            assert likes + dislikes == 1
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_conflict_keeps_opposite_removed(self, ledger, db_session, clean_hooks):
        """Converging on a conflict still removes the opposite edge."""
        await ledger.like(7, 1)
        await ledger.dislike(7, 1)
        like_id = await ledger._find_edge_id(7, 1, RelationKind.LIKED_BY)
        exclusive = ReactionLedger(db_session, POST_TARGET, ReactionPolicy(mutually_exclusive=True))
        removed = AsyncMock()
        hooks.add_action(AFTER_REACTION_REMOVED, removed)

        with patch.object(exclusive, "_find_edge_id", AsyncMock(side_effect=[None, like_id])):
            result = await exclusive.like(7, 1)

        assert result.active is True
        assert result.count == 1
        assert await _edge_count(db_session, PostRelation, 7, RelationKind.DISLIKED_BY) == 0
        removed.assert_awaited_once_with("post", 7, 1, RelationKind.DISLIKED_BY)

    @pytest.mark.asyncio
    async def test_lookup_failure_rolls_back(self, ledger, db_session):
        failure = OperationalError("SELECT posts.id", {}, Exception("database is locked"))
        with patch.object(ledger, "target_exists", AsyncMock(side_effect=failure)), \
             patch.object(db_session, "rollback", AsyncMock()) as rollback:
            with pytest.raises(StorageFailureError, match="Failed to look up post 7"):
                await ledger.like(7, 1)

        rollback.assert_awaited_once()


class TestTracing:
    """Transitions are traced through the observability facade."""

    @pytest.mark.asyncio
    async def test_toggle_opens_reaction_span(self, ledger):
        with patch.object(observability, "_logfire", MagicMock()) as mock_lf, \
             patch.object(observability, "_configured", True):
            await ledger.like(7, 1)

        mock_lf.span.assert_any_call(
            "reactions.toggle", target="post", target_id=7, user_id=1, kind="likedBy"
        )
        span = mock_lf.span.return_value.__enter__.return_value
        span.set_attribute.assert_any_call("count", 1)

    @pytest.mark.asyncio
    async def test_conflict_warning_goes_to_logfire(self, ledger):
        await ledger.like(7, 1)

        with patch.object(observability, "_logfire", MagicMock()) as mock_lf, \
             patch.object(observability, "_configured", True), \
             patch.object(ledger, "_find_edge_id", AsyncMock(side_effect=[None, 1])):
            await ledger.like(7, 1)

        mock_lf.warn.assert_called_once_with(
            "reactions.uniqueness_conflict",
            target="post", target_id=7, user_id=1, kind="likedBy",
        )

    @pytest.mark.asyncio
    async def test_no_span_without_logfire(self, ledger):
        with patch.object(observability, "_logfire", None), \
             patch.object(observability, "_configured", False):
            result = await ledger.like(7, 1)
        assert result.active is True


class TestHooks:
    """Reaction hooks fire after each effective transition."""

    @pytest.mark.asyncio
    async def test_added_and_removed_hooks(self, ledger, clean_hooks):
        added = AsyncMock()
        removed = AsyncMock()
        hooks.add_action(AFTER_REACTION_ADDED, added)
        hooks.add_action(AFTER_REACTION_REMOVED, removed)

        await ledger.like(7, 1)
        await ledger.like(7, 1)

        added.assert_awaited_once_with("post", 7, 1, RelationKind.LIKED_BY)
        removed.assert_awaited_once_with("post", 7, 1, RelationKind.LIKED_BY)

    @pytest.mark.asyncio
    async def test_noop_unlike_fires_nothing(self, ledger, clean_hooks):
        removed = AsyncMock()
        hooks.add_action(AFTER_REACTION_REMOVED, removed)

        await ledger.unlike(7, 1)

        removed.assert_not_awaited()


class TestFactories:

    def test_post_ledger_uses_settings_policy(self):
        settings = Settings(reactions=ReactionsConfig(mutually_exclusive=True))
        ledger = post_ledger(AsyncMock(), settings)
        assert ledger.target is POST_TARGET
        assert ledger.policy.mutually_exclusive is True

    def test_comment_ledger_defaults(self, settings):
        ledger = comment_ledger(AsyncMock(), settings)
        assert ledger.target is COMMENT_TARGET
        assert ledger.policy.mutually_exclusive is False
