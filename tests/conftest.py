"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from rollcall.database.models import Base, Membership

ROSTER_URL = "https://students.example.org/groups/42/members"


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Rollcall tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


def add_member(
    engine: Engine,
    external_id: int,
    display_name: str = "Member",
    platform_identity: int | None = None,
    eligible_for_removal: bool = False,
) -> None:
    """Insert one membership row directly."""
    with Session(engine) as s:
        s.add(Membership(
            external_id=external_id,
            display_name=display_name,
            platform_identity=platform_identity,
            eligible_for_removal=eligible_for_removal,
        ))
        s.commit()


def roster_html(rows: list[tuple[str, ...]]) -> str:
    """Render a roster page whose table body holds *rows* of cell text."""
    body = "".join(
        "<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>"
        for row in rows
    )
    return (
        "<html><body><h1>Members</h1>"
        '<table id="group-member-list-datatable">'
        "<thead><tr><th>ID</th><th>Name</th><th>Joined</th></tr></thead>"
        f"<tbody>{body}</tbody></table></body></html>"
    )
