"""
Tests for reference record listings and name lookups.
"""

from src.db.deps import get_session
from src.db.models import Client, Contract, TeamMember
from src.inbox.registry import find_software_item, find_team_member, list_clients, load_registry


class TestListings:
    def test_inactive_rows_excluded(self, reference_data):
        with get_session() as session:
            session.get(Client, reference_data["globex"].id).is_active = False

        assert [c.name for c in list_clients()] == ["Acme Ltd"]

    def test_load_registry(self, reference_data):
        with get_session() as session:
            session.add_all(
                [
                    Contract(contract_name="Globex MSA", contract_type="msa"),
                    Contract(contract_name="Acme SOW", contract_type="sow"),
                    Contract(contract_name="Old SOW", contract_type="sow", is_active=False),
                ]
            )

        registry = load_registry()

        assert [c.name for c in registry.clients] == ["Acme Ltd", "Globex Corporation"]
        assert [m.name for m in registry.team_members] == ["Alice Smith", "Bob Jones"]
        assert [i.name for i in registry.software_items] == ["GitHub", "Slack", "Zoom"]
        assert [c.contract_name for c in registry.contracts] == ["Acme SOW", "Globex MSA"]


class TestFindByName:
    def test_partial_name(self, reference_data):
        assert find_team_member("alice").id == reference_data["alice"].id
        assert find_software_item("git").id == reference_data["github"].id

    def test_no_match(self, reference_data):
        assert find_software_item("Figma") is None
        assert find_team_member("") is None

    def test_wildcards_are_literal(self, reference_data):
        assert find_team_member("%") is None
        assert find_software_item("_") is None

    def test_inactive_rows_never_returned(self, reference_data):
        with get_session() as session:
            session.get(TeamMember, reference_data["alice"].id).is_active = False

        assert find_team_member("alice") is None
        assert find_team_member("Alice Smith") is None
