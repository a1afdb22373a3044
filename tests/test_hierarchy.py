"""
Tests for Hierarchy, Permissions and Configuration

Tests hierarchy traversal bounds, the capability table and config loading.
"""

from decimal import Decimal
from pathlib import Path

import pytest

from sitefunds.config import DEFAULT_CONFIG, load_config
from sitefunds.exceptions import AuthorizationError, NotFoundError
from sitefunds.hierarchy import OrgHierarchy, UserProfile
from sitefunds.permissions import Actor, PermissionTable
from sitefunds.repository import MemoryRepository
from sitefunds.services import build_services


# =============================================================================
# OrgHierarchy Tests
# =============================================================================

class TestOrgHierarchy:
    """Tests for OrgHierarchy class."""

    def test_descendants_and_ancestors(self, services):
        hierarchy = services.hierarchy

        assert hierarchy.descendants("manager") == ["supervisor", "supervisor2", "worker", "worker2"]
        assert hierarchy.descendants("worker") == []
        assert hierarchy.ancestors("worker") == ["supervisor", "manager", "director"]
        assert hierarchy.superior("manager") == "director"
        assert hierarchy.superior("director") is None

    def test_is_descendant(self, services):
        assert services.hierarchy.is_descendant("worker", "manager")
        assert not services.hierarchy.is_descendant("worker", "supervisor2")
        assert not services.hierarchy.is_descendant("manager", "manager")

    def test_profile_fields(self, services):
        worker = services.hierarchy.get_user("worker")
        assert worker.daily_rate == Decimal("355")
        assert worker.is_active

    def test_unknown_user(self, services):
        with pytest.raises(NotFoundError):
            services.hierarchy.get_user("ghost")
        assert services.hierarchy.find_user("ghost") is None

    def test_cycle_terminates(self):
        hierarchy = OrgHierarchy(MemoryRepository())
        hierarchy.add_user(UserProfile(id="a", name="A", role="manager", parent_id="b"))
        hierarchy.add_user(UserProfile(id="b", name="B", role="manager", parent_id="a"))

        assert hierarchy.ancestors("a") == ["b"]
        assert hierarchy.descendants("a") == ["b"]

    def test_depth_bound(self):
        hierarchy = OrgHierarchy(MemoryRepository(), max_depth=3)
        hierarchy.add_user(UserProfile(id="u0", name="U0", role="director"))
        for i in range(1, 6):
            hierarchy.add_user(UserProfile(id=f"u{i}", name=f"U{i}", role="worker", parent_id=f"u{i - 1}"))

        assert hierarchy.descendants("u0") == ["u1", "u2", "u3"]
        assert hierarchy.ancestors("u5") == ["u4", "u3", "u2"]


# =============================================================================
# PermissionTable Tests
# =============================================================================

class TestPermissionTable:
    """Tests for PermissionTable class."""

    def test_top_role(self, config: dict):
        table = PermissionTable(config=config)

        assert table.top_role == "director"
        assert table.is_top_role("director")
        assert table.rank("director") < table.rank("worker")
        assert table.rank("contractor") == len(table.roles)

    def test_wildcards(self):
        table = PermissionTable(config={
            "roles": ["owner", "clerk"],
            "permissions": {"owner": ["*"], "clerk": ["expense.*"]},
        })

        assert table.has_permission(Actor("o", "owner"), "contract.delete")
        assert table.has_permission(Actor("c", "clerk"), "expense.decide")
        assert not table.has_permission(Actor("c", "clerk"), "bill.decide")

    def test_require(self, config: dict):
        table = PermissionTable(config=config)
        table.require(Actor("s", "supervisor"), "attendance.mark")

        with pytest.raises(AuthorizationError) as exc_info:
            table.require(Actor("w", "worker"), "attendance.mark")
        assert exc_info.value.details["operation"] == "attendance.mark"

    def test_unknown_role_has_nothing(self, config: dict):
        table = PermissionTable(config=config)
        assert not table.has_permission(Actor("x", "visitor"), "expense.create")


# =============================================================================
# Configuration Tests
# =============================================================================

class TestConfig:
    """Tests for load_config."""

    def test_repository_config(self, config_dir: Path):
        config = load_config(config_dir)

        assert config["roles"][0] == "director"
        assert config["gst"]["default_rate"] == 18
        assert config["utilization"]["over_utilization_policy"] == "advisory"

    def test_missing_file_uses_defaults(self, tmp_path: Path):
        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_partial_override(self, tmp_path: Path):
        (tmp_path / "fund_flow.yaml").write_text(
            "utilization:\n"
            "  over_utilization_policy: enforce\n"
            "gst:\n"
            "  rates: [0, 18]\n"
        )

        config = load_config(tmp_path)
        assert config["utilization"]["over_utilization_policy"] == "enforce"
        assert config["utilization"]["thresholds"]["warning"] == 70
        assert config["gst"]["rates"] == [0, 18]
        assert config["gst"]["default_rate"] == 18

    def test_user_directory_loaded(self, tmp_path: Path):
        (tmp_path / "fund_flow.yaml").write_text(
            "users:\n"
            "  - {id: boss, name: Boss, role: director}\n"
            "  - {id: lead, name: Lead, role: supervisor, parent_id: boss}\n"
            "  - {id: mason, name: Mason, role: worker, parent_id: lead, daily_rate: 355}\n"
        )
        repository = MemoryRepository()

        services = build_services(repository, config_dir=tmp_path)
        assert services.hierarchy.descendants("boss") == ["lead", "mason"]
        assert services.hierarchy.get_user("mason").daily_rate == Decimal("355")
        assert services.hierarchy.find_user("dev") is None

        # Loading again refreshes profiles instead of failing on duplicates
        (tmp_path / "fund_flow.yaml").write_text(
            "users:\n"
            "  - {id: mason, name: Mason, role: worker, parent_id: lead, daily_rate: 400}\n"
        )
        services = build_services(repository, config_dir=tmp_path)
        assert services.hierarchy.get_user("mason").daily_rate == Decimal("400")

    def test_default_directory_has_dev_user(self, config: dict):
        services = build_services(MemoryRepository(), config=config)
        assert services.permissions.is_top_role(services.hierarchy.get_user("dev").role)

    def test_explicit_users_replace_configured(self, config: dict):
        services = build_services(
            MemoryRepository(), config=config, users=[UserProfile(id="solo", name="Solo", role="director")]
        )
        assert services.hierarchy.find_user("dev") is None
        assert services.hierarchy.get_user("solo").name == "Solo"
