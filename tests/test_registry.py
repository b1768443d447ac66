# tests/test_registry.py
"""
Tests for the dispatch target registry: bundled dataset, JSON loading, immutability.
"""
import json

import pytest

from civic_dispatch.core.composer import DEFAULT_TEMPLATE
from civic_dispatch.core.domain import IssueCategory
from civic_dispatch.core.errors import RegistryLoadError
from civic_dispatch.core.registry import EntityRegistry, _target_from_entry, load_registry

from conftest import make_target


def _entry(**overrides):
    entry = {
        "id": "surat",
        "name": "Surat Municipal Corporation",
        "location": {"lat": 21.1702, "lng": 72.8311},
        "email": "complaints@suratmunicipal.gov.in",
        "phone": "0261-2423751",
        "website": "https://suratmunicipal.gov.in",
        "jurisdiction": "Surat",
        "categories": ["roads", "Cleanliness"],
    }
    entry.update(overrides)
    return entry


# ============================================================================
# Bundled dataset
# ============================================================================

class TestBundledRegistry:

    def test_loads_all_corporations(self):
        registry = load_registry()
        assert len(registry) == 8
        assert [t.id for t in registry][:3] == ["mumbai", "delhi", "bangalore"]

    def test_lookup_by_id(self):
        registry = load_registry()
        mumbai = registry.get("mumbai")
        assert mumbai is not None
        assert mumbai.display_name == "Brihanmumbai Municipal Corporation"
        assert mumbai.location.lat == pytest.approx(19.076)
        assert "mumbai" in registry
        assert registry.get("atlantis") is None

    def test_every_target_covers_every_category(self):
        for target in load_registry():
            assert target.covered_categories == frozenset(IssueCategory)

    def test_default_template_applied(self):
        assert all(t.message_template == DEFAULT_TEMPLATE for t in load_registry())


# ============================================================================
# Entry parsing
# ============================================================================

class TestTargetFromEntry:

    def test_parses_fields(self):
        target = _target_from_entry(_entry())
        assert target.id == "surat"
        assert target.contact_email == "complaints@suratmunicipal.gov.in"
        assert target.covered_categories == frozenset({IssueCategory.ROADS, IssueCategory.CLEANLINESS})

    def test_custom_template(self):
        target = _target_from_entry(_entry(template="Dear team, {title}"))
        assert target.message_template == "Dear team, {title}"

    def test_missing_field(self):
        entry = _entry()
        del entry["email"]
        with pytest.raises(RegistryLoadError, match="email"):
            _target_from_entry(entry)

    def test_unknown_category(self):
        with pytest.raises(RegistryLoadError, match="surat"):
            _target_from_entry(_entry(categories=["roads", "parking"]))

    def test_invalid_location(self):
        with pytest.raises(RegistryLoadError):
            _target_from_entry(_entry(location={"lat": 95.0, "lng": 0.0}))


# ============================================================================
# load_registry from file
# ============================================================================

class TestLoadRegistry:

    def test_custom_file(self, tmp_path):
        path = tmp_path / "targets.json"
        path.write_text(json.dumps({"version": 1, "targets": [_entry()]}), encoding="utf-8")
        registry = load_registry(path)
        assert [t.id for t in registry] == ["surat"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(RegistryLoadError, match="Cannot read"):
            load_registry(tmp_path / "nope.json")

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "targets.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(RegistryLoadError):
            load_registry(path)

    def test_no_targets_list(self, tmp_path):
        path = tmp_path / "targets.json"
        path.write_text(json.dumps({"version": 1}), encoding="utf-8")
        with pytest.raises(RegistryLoadError, match="no 'targets' list"):
            load_registry(path)

    def test_duplicate_ids(self, tmp_path):
        path = tmp_path / "targets.json"
        path.write_text(json.dumps({"targets": [_entry(), _entry()]}), encoding="utf-8")
        with pytest.raises(RegistryLoadError, match="Duplicate"):
            load_registry(path)


# ============================================================================
# Immutability
# ============================================================================

class TestEntityRegistry:

    def test_order_preserved(self):
        registry = EntityRegistry([make_target("b"), make_target("a"), make_target("c")])
        assert [t.id for t in registry] == ["b", "a", "c"]
        assert [t.id for t in registry.all()] == ["b", "a", "c"]

    def test_source_list_mutation_does_not_leak(self):
        source = [make_target("a")]
        registry = EntityRegistry(source)
        source.append(make_target("b"))
        assert len(registry) == 1
        assert "b" not in registry

    def test_no_attribute_assignment(self):
        registry = EntityRegistry([make_target("a")])
        with pytest.raises(AttributeError):
            registry.extra = "nope"

    def test_index_is_read_only(self):
        registry = EntityRegistry([make_target("a")])
        with pytest.raises(TypeError):
            registry._by_id["b"] = make_target("b")

    def test_targets_are_frozen(self):
        target = make_target("a")
        with pytest.raises(AttributeError):
            target.contact_email = "other@example.gov"
