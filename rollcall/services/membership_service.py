"""
rollcall.services.membership_service — Membership Store for Commands
=====================================================================

Everything the Discord command layer may do to the ``memberships``
table.  The sync loop inserts, flags and deletes unbound rows; only the
functions here touch ``platform_identity`` or delete a bound row.

Every function opens its own transaction and returns plain
:class:`MemberView` snapshots, so callers can use the result after the
session is closed (and from the event loop, via ``run_db``).  Writes are
keyed by ``external_id`` with a condition on the value they expect to
replace, so a reconciliation tick and a command racing on the same row
cannot silently undo each other.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from sqlalchemy import Engine, delete, select, update

from rollcall.database.engine import get_session
from rollcall.database.models import Membership

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MemberView:
    """Read-only snapshot of one :class:`Membership` row."""
    external_id: int
    display_name: str
    platform_identity: int | None
    eligible_for_removal: bool

    @classmethod
    def from_row(cls, row: Membership) -> MemberView:
        return cls(
            external_id=row.external_id,
            display_name=row.display_name,
            platform_identity=row.platform_identity,
            eligible_for_removal=row.eligible_for_removal,
        )


class BindResult(enum.StrEnum):
    """Outcome of :func:`bind_platform_identity`."""
    BOUND = "bound"                      # Newly bound
    ALREADY_BOUND = "already_bound"      # Same user was already bound to this id
    TAKEN = "taken"                      # Another user owns this id
    IDENTITY_IN_USE = "identity_in_use"  # This user is bound to another id
    NOT_FOUND = "not_found"              # Id not on the roster


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_by_external_id(engine: Engine, external_id: int) -> MemberView | None:
    with get_session(engine) as session:
        row = session.get(Membership, external_id)
        return MemberView.from_row(row) if row else None


def get_by_platform_identity(engine: Engine, platform_identity: int) -> MemberView | None:
    with get_session(engine) as session:
        row = session.scalars(
            select(Membership).where(Membership.platform_identity == platform_identity)
        ).first()
        return MemberView.from_row(row) if row else None


def list_memberships(engine: Engine, *, bound_only: bool = False) -> list[MemberView]:
    """Every membership ordered by ``external_id``."""
    with get_session(engine) as session:
        q = select(Membership).order_by(Membership.external_id)
        if bound_only:
            q = q.where(Membership.platform_identity.is_not(None))
        return [MemberView.from_row(r) for r in session.scalars(q).all()]


def list_pending_offboarding(engine: Engine) -> list[MemberView]:
    """Bound members flagged by the sync loop, awaiting ``/prune``."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(Membership)
            .where(Membership.eligible_for_removal.is_(True))
            .order_by(Membership.external_id)
        ).all()
        return [MemberView.from_row(r) for r in rows]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def bind_platform_identity(
    engine: Engine, external_id: int, platform_identity: int,
) -> tuple[BindResult, MemberView | None]:
    """Attach a Discord user to a roster id, never stealing another binding.

    Returns the outcome and the member row (``None`` if the id is unknown).
    """
    with get_session(engine) as session:
        row = session.get(Membership, external_id)
        if row is None:
            return BindResult.NOT_FOUND, None

        if row.platform_identity == platform_identity:
            return BindResult.ALREADY_BOUND, MemberView.from_row(row)
        if row.platform_identity is not None:
            return BindResult.TAKEN, MemberView.from_row(row)

        other = session.scalars(
            select(Membership).where(Membership.platform_identity == platform_identity)
        ).first()
        if other is not None:
            return BindResult.IDENTITY_IN_USE, MemberView.from_row(other)

        bound = session.execute(
            update(Membership)
            .where(
                Membership.external_id == external_id,
                Membership.platform_identity.is_(None),
            )
            .values(platform_identity=platform_identity)
            .execution_options(synchronize_session=False)
        ).rowcount
        if not bound:
            # Lost a race with another /register for the same id
            session.refresh(row)
            return BindResult.TAKEN, MemberView.from_row(row)

        session.refresh(row)
        view = MemberView.from_row(row)

    logger.info("Bound member %d to Discord user %d", external_id, platform_identity)
    return BindResult.BOUND, view


def clear_platform_identity(engine: Engine, platform_identity: int) -> MemberView | None:
    """Detach a Discord user from whatever roster id it is bound to.

    Returns the updated member, or ``None`` if the user wasn't bound.
    """
    with get_session(engine) as session:
        row = session.scalars(
            select(Membership).where(Membership.platform_identity == platform_identity)
        ).first()
        if row is None:
            return None
        session.execute(
            update(Membership)
            .where(
                Membership.external_id == row.external_id,
                Membership.platform_identity == platform_identity,
            )
            .values(platform_identity=None)
            .execution_options(synchronize_session=False)
        )
        session.refresh(row)
        view = MemberView.from_row(row)

    logger.info("Unbound Discord user %d from member %d", platform_identity, view.external_id)
    return view


def set_eligible_for_removal(engine: Engine, external_id: int, eligible: bool) -> bool:
    """Set the offboarding flag by hand.  Returns ``False`` if the id is unknown."""
    with get_session(engine) as session:
        changed = session.execute(
            update(Membership)
            .where(Membership.external_id == external_id)
            .values(eligible_for_removal=eligible)
        ).rowcount
    return bool(changed)


def delete_membership(
    engine: Engine, external_id: int, *, only_if_flagged: bool = False,
) -> bool:
    """Delete one membership row.

    With *only_if_flagged* the row is deleted only while it is still
    ``eligible_for_removal``, which is what ``/prune`` uses after revoking
    the role.  Returns ``True`` if a row was deleted.
    """
    stmt = delete(Membership).where(Membership.external_id == external_id)
    if only_if_flagged:
        stmt = stmt.where(Membership.eligible_for_removal.is_(True))
    with get_session(engine) as session:
        gone = session.execute(stmt).rowcount
    if gone:
        logger.info("Deleted member %d", external_id)
    return bool(gone)
