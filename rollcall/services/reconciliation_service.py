"""
rollcall.services.reconciliation_service — Roster Reconciliation
=================================================================

Applies a freshly scraped roster to the ``memberships`` table.

How it works:
    1. Collect the set of ``external_id`` values in the new roster.
    2. For every stored member **not** in that set:
         * no Discord binding → delete the row outright;
         * bound → set ``eligible_for_removal`` so ``/prune`` can revoke
           the role before the row goes away.
    3. Insert any roster member we have never seen.  Existing rows keep
       their binding, name and flag — a flagged member who reappears is
       **not** un-flagged automatically.

Steps 2 and 3 happen in one transaction, and step 2 always sees the full
new id set.  Deletes and flag updates carry a condition on
``platform_identity`` so a ``/register`` that lands mid-tick is never
overwritten: a row bound a moment ago is flagged instead of deleted.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import Engine, delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from rollcall.database.engine import get_session
from rollcall.database.models import Membership
from rollcall.errors import ReconciliationUnavailable
from rollcall.services.roster_extractor import RosterEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    inserted: int = 0
    flagged: int = 0
    deleted: int = 0
    unchanged: int = 0

    @property
    def mutated(self) -> bool:
        return bool(self.inserted or self.flagged or self.deleted)


def reconcile_roster(engine: Engine, entries: Sequence[RosterEntry]) -> ReconcileResult:
    """Reconcile *entries* against every stored membership.

    Raises
    ------
    ReconciliationUnavailable
        If the store cannot be read or written.  Nothing is committed.
    """
    scraped_ids = {e.external_id for e in entries}
    inserted = flagged = deleted = unchanged = 0

    try:
        with get_session(engine) as session:
            stored = session.execute(
                select(
                    Membership.external_id,
                    Membership.platform_identity,
                    Membership.eligible_for_removal,
                )
            ).all()
            known_ids = {row.external_id for row in stored}

            # --- Departures (must run before inserts) ---------------------
            for row in stored:
                if row.external_id in scraped_ids:
                    continue

                if row.platform_identity is None:
                    gone = session.execute(
                        delete(Membership).where(
                            Membership.external_id == row.external_id,
                            Membership.platform_identity.is_(None),
                        )
                    ).rowcount
                    if gone:
                        deleted += 1
                        logger.info("Deleted unbound member %d (left roster)", row.external_id)
                        continue

                if row.eligible_for_removal:
                    unchanged += 1
                    continue

                marked = session.execute(
                    update(Membership)
                    .where(
                        Membership.external_id == row.external_id,
                        Membership.platform_identity.is_not(None),
                        Membership.eligible_for_removal.is_(False),
                    )
                    .values(eligible_for_removal=True)
                ).rowcount
                if marked:
                    flagged += 1
                    logger.info("Flagged bound member %d for removal", row.external_id)
                else:
                    unchanged += 1

            # --- Arrivals ---------------------------------------------------
            for entry in entries:
                if entry.external_id in known_ids:
                    unchanged += 1
                    continue
                session.add(Membership(
                    external_id=entry.external_id,
                    display_name=entry.display_name,
                    eligible_for_removal=False,
                ))
                known_ids.add(entry.external_id)
                inserted += 1
    except SQLAlchemyError as exc:
        raise ReconciliationUnavailable(f"Membership store unavailable: {exc}") from exc

    result = ReconcileResult(
        inserted=inserted, flagged=flagged, deleted=deleted, unchanged=unchanged,
    )
    if result.mutated:
        logger.info(
            "Roster reconciliation: inserted=%d flagged=%d deleted=%d unchanged=%d",
            inserted, flagged, deleted, unchanged,
        )
    else:
        logger.info("Roster reconciliation: all %d members up to date", unchanged)
    return result
