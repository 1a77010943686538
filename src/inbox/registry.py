"""
Reference records used for matching: clients, team members, software items
and contracts. Each listing returns the active subset ordered by name.
"""

from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from src.db.deps import session_scope
from src.db.models import Client, Contract, SoftwareItem, TeamMember
from src.matching.fuzzy import match_candidate


def _active(model, session: Session, order_by) -> list:
    return session.query(model).filter(model.is_active.is_(True)).order_by(order_by).all()


def list_clients(session: Session | None = None) -> list[Client]:
    with session_scope(session) as sess:
        return _active(Client, sess, Client.name)


def list_team_members(session: Session | None = None) -> list[TeamMember]:
    with session_scope(session) as sess:
        return _active(TeamMember, sess, TeamMember.name)


def list_software_items(session: Session | None = None) -> list[SoftwareItem]:
    with session_scope(session) as sess:
        return _active(SoftwareItem, sess, SoftwareItem.name)


def list_contracts(session: Session | None = None) -> list[Contract]:
    with session_scope(session) as sess:
        return _active(Contract, sess, Contract.contract_name)


@dataclass
class Registry:
    """Snapshot of the reference sets for one unit of work."""

    clients: list[Client] = field(default_factory=list)
    team_members: list[TeamMember] = field(default_factory=list)
    software_items: list[SoftwareItem] = field(default_factory=list)
    contracts: list[Contract] = field(default_factory=list)


def load_registry(session: Session | None = None) -> Registry:
    with session_scope(session) as sess:
        return Registry(
            clients=list_clients(sess),
            team_members=list_team_members(sess),
            software_items=list_software_items(sess),
            contracts=list_contracts(sess),
        )


def _like_literal(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _find_by_name(model, name: str, session: Session):
    """Case-insensitive containment first, then the fuzzy matcher; active rows only."""
    name = (name or "").strip()
    if not name:
        return None
    hit = (
        session.query(model)
        .filter(
            model.is_active.is_(True),
            model.name.ilike(f"%{_like_literal(name)}%", escape="\\"),
        )
        .order_by(model.name)
        .first()
    )
    if hit is not None:
        return hit
    return match_candidate(name, _active(model, session, model.name)).candidate


def find_team_member(name: str, session: Session | None = None) -> TeamMember | None:
    with session_scope(session) as sess:
        return _find_by_name(TeamMember, name, sess)


def find_software_item(name: str, session: Session | None = None) -> SoftwareItem | None:
    with session_scope(session) as sess:
        return _find_by_name(SoftwareItem, name, sess)
