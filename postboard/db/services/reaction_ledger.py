"""Like/dislike toggling and counting for posts and comments.

Reactions are rows in a relation table (``posts_rels`` / ``comments_rels``)
discriminated by ``path``. Every (target, user, kind) triple is either Absent
or Present: ``like``/``dislike`` flip it, ``unlike`` forces it Absent. Counts
are never cached; each read counts the live rows.

Transitions on the same triple are serialized in-process by a keyed lock, and
identical concurrent calls coalesce into a single transition. When likes and
dislikes are mutually exclusive the lock covers the (target, user) pair
instead, and the target row is locked for the transaction so other processes
queue behind it. Across processes the composite unique key on
``(parent_id, user_id, path)`` rejects duplicate inserts; the ledger treats
that conflict as a concurrent writer having performed the same transition.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.config import get_settings
from postboard.db.models import Comment, CommentRelation, Post, PostRelation, RelationKind
from postboard.lib import observability
from postboard.lib.exceptions import (
    InvalidArgumentError,
    StorageFailureError,
    TargetNotFoundError,
    require_id,
)
from postboard.lib.hooks import AFTER_REACTION_ADDED, AFTER_REACTION_REMOVED, hooks
from postboard.lib.keyed_lock import KeyedLocks, KeyedSingleFlight, reaction_flights, reaction_locks
from postboard.lib.media import UserSummary, summarize_user

if TYPE_CHECKING:
    from postboard.config import Settings

logger = logging.getLogger(__name__)

_OPPOSITE = {
    RelationKind.LIKED_BY: RelationKind.DISLIKED_BY,
    RelationKind.DISLIKED_BY: RelationKind.LIKED_BY,
}


@dataclass(frozen=True)
class ReactionTarget:
    """Which tables a ledger works on and which existence checks it performs."""

    name: str
    entity: type[Post] | type[Comment]
    relation: type[PostRelation] | type[CommentRelation]
    validate_on_toggle: bool = True
    validate_on_unlike: bool = False


POST_TARGET = ReactionTarget("post", Post, PostRelation, validate_on_toggle=True, validate_on_unlike=False)
# Comments skip the existence check on toggle but enforce it on unlike
COMMENT_TARGET = ReactionTarget(
    "comment", Comment, CommentRelation, validate_on_toggle=False, validate_on_unlike=True
)


@dataclass(frozen=True)
class ReactionPolicy:
    mutually_exclusive: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> ReactionPolicy:
        return cls(mutually_exclusive=settings.reactions.mutually_exclusive)


@dataclass(frozen=True)
class ToggleResult:
    kind: RelationKind
    active: bool
    count: int
    message: str


@dataclass(frozen=True)
class UnlikeResult:
    removed: bool
    count: int
    message: str


@dataclass(frozen=True)
class Reactor:
    edge_id: int
    user_id: int
    user: UserSummary | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.edge_id,
            "userId": self.user_id,
            "user": self.user.to_dict() if self.user else None,
        }


def _require_reaction_kind(kind: RelationKind | str) -> RelationKind:
    try:
        kind = RelationKind(kind)
    except ValueError:
        raise InvalidArgumentError(f"Unknown relation kind: {kind!r}") from None
    if not kind.is_reaction:
        raise InvalidArgumentError(f"Not a reaction kind: {kind.value}")
    return kind


class ReactionLedger:
    """Toggle and query reaction edges for one kind of target.

    The session is owned by the caller; the ledger commits after each
    transition and rolls back on storage errors.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        target: ReactionTarget,
        policy: ReactionPolicy | None = None,
        *,
        flights: KeyedSingleFlight | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._session = db_session
        self.target = target
        self.policy = policy or ReactionPolicy()
        self._flights = flights if flights is not None else reaction_flights
        self._locks = locks if locks is not None else reaction_locks

    # -- transitions ---------------------------------------------------------

    async def like(self, target_id: Any, user_id: Any) -> ToggleResult:
        return await self.toggle(target_id, user_id, RelationKind.LIKED_BY)

    async def dislike(self, target_id: Any, user_id: Any) -> ToggleResult:
        return await self.toggle(target_id, user_id, RelationKind.DISLIKED_BY)

    async def toggle(self, target_id: Any, user_id: Any, kind: RelationKind) -> ToggleResult:
        """Create the edge if absent, delete it if present, and report the new count."""
        kind = _require_reaction_kind(kind)
        target_id = require_id(target_id, f"{self.target.name}Id")
        user_id = require_id(user_id, "userId")
        return await self._serialized(
            "toggle", target_id, user_id, kind, lambda: self._toggle(target_id, user_id, kind)
        )

    async def unlike(self, target_id: Any, user_id: Any) -> UnlikeResult:
        """Force the like edge Absent. Removing a missing edge is a no-op."""
        target_id = require_id(target_id, f"{self.target.name}Id")
        user_id = require_id(user_id, "userId")
        kind = RelationKind.LIKED_BY
        return await self._serialized(
            "unlike", target_id, user_id, kind, lambda: self._unlike(target_id, user_id)
        )

    async def _serialized(
        self,
        operation: str,
        target_id: int,
        user_id: int,
        kind: RelationKind,
        work: Callable[[], Awaitable[Any]],
    ) -> Any:
        key = (self.target.name, target_id, user_id, kind)
        # A like and a dislike touch each other's edge under mutual exclusion
        lock_key = key[:3] if self.policy.mutually_exclusive else key

        async def guarded() -> Any:
            async with self._locks.hold(lock_key):
                with observability.reaction_span(
                    operation, self.target.name, target_id, user_id, kind
                ) as span:
                    result = await work()
                    observability.set_attributes(span, count=result.count)
                    return result

        return await self._flights.run((operation, *key), guarded)

    async def _toggle(self, target_id: int, user_id: int, kind: RelationKind) -> ToggleResult:
        await self._check_target(target_id, self.target.validate_on_toggle)
        events: list[tuple[str, RelationKind]] = []

        try:
            if self.policy.mutually_exclusive:
                await self._lock_target_row(target_id)
            edge_id = await self._find_edge_id(target_id, user_id, kind)
            if edge_id is not None:
                await self._session.execute(
                    delete(self.target.relation).where(self.target.relation.id == edge_id)
                )
                await self._session.commit()
                events.append((AFTER_REACTION_REMOVED, kind))
                active = False
            else:
                events.extend(await self._create_edge(target_id, user_id, kind))
                active = True
            count = await self.count_reactions(target_id, kind)
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StorageFailureError(
                f"Failed to toggle {kind.value} on {self.target.name} {target_id}"
            ) from exc

        logger.debug(
            "%s %s %s by user %s -> %s (count=%d)",
            kind.value, self.target.name, target_id, user_id,
            "present" if active else "absent", count,
        )
        await self._fire(events, target_id, user_id)
        return ToggleResult(kind=kind, active=active, count=count, message=self._message(kind, active))

    async def _create_edge(
        self, target_id: int, user_id: int, kind: RelationKind
    ) -> list[tuple[str, RelationKind]]:
        """Insert the edge, returning the hook events the insert produced."""
        relation = self.target.relation
        events = await self._remove_opposite(target_id, user_id, kind)

        self._session.add(relation(parent_id=target_id, user_id=user_id, path=kind))
        try:
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            if not observability.warning(
                "reactions.uniqueness_conflict",
                target=self.target.name, target_id=target_id, user_id=user_id, kind=kind.value,
            ):
                logger.warning(
                    "Uniqueness conflict creating %s on %s %s for user %s; re-reading edge",
                    kind.value, self.target.name, target_id, user_id,
                )
            if await self._find_edge_id(target_id, user_id, kind) is None:
                raise StorageFailureError(
                    f"Could not create {kind.value} on {self.target.name} {target_id}"
                ) from exc
            # Another writer performed the same Absent -> Present transition.
            # The rollback also undid the opposite delete, so apply it again.
            if self.policy.mutually_exclusive:
                await self._lock_target_row(target_id)
            events = await self._remove_opposite(target_id, user_id, kind)
            await self._session.commit()
            return events

        events.append((AFTER_REACTION_ADDED, kind))
        return events

    async def _remove_opposite(
        self, target_id: int, user_id: int, kind: RelationKind
    ) -> list[tuple[str, RelationKind]]:
        if not self.policy.mutually_exclusive:
            return []
        relation = self.target.relation
        opposite = _OPPOSITE[kind]
        removed = await self._session.execute(
            delete(relation).where(
                relation.parent_id == target_id,
                relation.user_id == user_id,
                relation.path == opposite,
            )
        )
        if removed.rowcount:
            return [(AFTER_REACTION_REMOVED, opposite)]
        return []

    async def _unlike(self, target_id: int, user_id: int) -> UnlikeResult:
        await self._check_target(target_id, self.target.validate_on_unlike)
        relation = self.target.relation
        kind = RelationKind.LIKED_BY

        try:
            result = await self._session.execute(
                delete(relation).where(
                    relation.parent_id == target_id,
                    relation.user_id == user_id,
                    relation.path == kind,
                )
            )
            await self._session.commit()
            count = await self.count_reactions(target_id, kind)
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StorageFailureError(
                f"Failed to unlike {self.target.name} {target_id}"
            ) from exc

        removed = bool(result.rowcount)
        if removed:
            await self._fire([(AFTER_REACTION_REMOVED, kind)], target_id, user_id)
            message = f"{self.target.name.capitalize()} unliked successfully"
        else:
            message = f"{self.target.name.capitalize()} was not liked by this user"
        return UnlikeResult(removed=removed, count=count, message=message)

    # -- queries -------------------------------------------------------------

    async def is_liked_by_user(self, target_id: Any, user_id: Any) -> bool:
        target_id = require_id(target_id, f"{self.target.name}Id")
        user_id = require_id(user_id, "userId")
        return await self._find_edge_id(target_id, user_id, RelationKind.LIKED_BY) is not None

    async def count_reactions(self, target_id: Any, kind: RelationKind) -> int:
        relation = self.target.relation
        result = await self._session.execute(
            select(func.count())
            .select_from(relation)
            .where(
                relation.parent_id == require_id(target_id, f"{self.target.name}Id"),
                relation.path == _require_reaction_kind(kind),
            )
        )
        return result.scalar_one()

    async def counts_for(self, target_ids: Iterable[int], kind: RelationKind) -> dict[int, int]:
        """Reaction counts for several targets in one query; absent targets count 0."""
        ids = list(target_ids)
        if not ids:
            return {}
        relation = self.target.relation
        result = await self._session.execute(
            select(relation.parent_id, func.count())
            .where(relation.parent_id.in_(ids), relation.path == _require_reaction_kind(kind))
            .group_by(relation.parent_id)
        )
        counts = dict.fromkeys(ids, 0)
        counts.update({parent_id: count for parent_id, count in result.all()})
        return counts

    async def list_reactors(
        self, target_id: Any, kind: RelationKind = RelationKind.LIKED_BY
    ) -> list[Reactor]:
        """Users holding a ``kind`` edge on the target, oldest edge first."""
        relation = self.target.relation
        result = await self._session.execute(
            select(relation)
            .where(
                relation.parent_id == require_id(target_id, f"{self.target.name}Id"),
                relation.path == _require_reaction_kind(kind),
            )
            .order_by(relation.id)
            .execution_options(populate_existing=True)
        )
        return [
            Reactor(edge_id=edge.id, user_id=edge.user_id, user=summarize_user(edge.user))
            for edge in result.scalars().all()
        ]

    # -- helpers -------------------------------------------------------------

    async def target_exists(self, target_id: int) -> bool:
        entity = self.target.entity
        result = await self._session.execute(select(entity.id).where(entity.id == target_id))
        return result.scalar_one_or_none() is not None

    async def _check_target(self, target_id: int, required: bool) -> None:
        if not required:
            logger.debug(
                "Skipping existence check for %s %s", self.target.name, target_id
            )
            return
        try:
            found = await self.target_exists(target_id)
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StorageFailureError(
                f"Failed to look up {self.target.name} {target_id}"
            ) from exc
        if not found:
            raise TargetNotFoundError(self.target.name, target_id)

    async def _lock_target_row(self, target_id: int) -> None:
        """Hold the target row until commit. SQLite has no row locks and serializes writers itself."""
        entity = self.target.entity
        await self._session.execute(
            select(entity.id).where(entity.id == target_id).with_for_update()
        )

    async def _find_edge_id(self, target_id: int, user_id: int, kind: RelationKind) -> int | None:
        relation = self.target.relation
        result = await self._session.execute(
            select(relation.id).where(
                relation.parent_id == target_id,
                relation.user_id == user_id,
                relation.path == kind,
            )
        )
        return result.scalar_one_or_none()

    async def _fire(self, events: list[tuple[str, RelationKind]], target_id: int, user_id: int) -> None:
        for hook_name, kind in events:
            await hooks.do_action(hook_name, self.target.name, target_id, user_id, kind)

    def _message(self, kind: RelationKind, active: bool) -> str:
        label = self.target.name.capitalize()
        if kind is RelationKind.LIKED_BY:
            verb = "liked" if active else "unliked"
        else:
            verb = "disliked" if active else "undisliked"
        return f"{label} {verb} successfully"


def post_ledger(db_session: AsyncSession, settings: Settings | None = None) -> ReactionLedger:
    settings = settings or get_settings()
    return ReactionLedger(db_session, POST_TARGET, ReactionPolicy.from_settings(settings))


def comment_ledger(db_session: AsyncSession, settings: Settings | None = None) -> ReactionLedger:
    settings = settings or get_settings()
    target = COMMENT_TARGET
    if settings.reactions.validate_comment_on_toggle:
        target = ReactionTarget(
            "comment", Comment, CommentRelation, validate_on_toggle=True, validate_on_unlike=True
        )
    return ReactionLedger(db_session, target, ReactionPolicy.from_settings(settings))
