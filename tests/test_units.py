"""Tests for units/declare.py and units/models.py.

Tests for unit declaration, validation and import inference.
"""

import pytest
from stacklayer.core.errors import ValidationError
from stacklayer.units import (
    AttributeRef,
    ExportSpec,
    IntentRef,
    Peer,
    ResourceIntent,
    Rule,
    SecurityBoundary,
    declare,
    export,
    find_attribute_refs,
    handle_for,
)


class TestDeclare:
    """Tests for declare()."""

    def test_builds_unit(self, primary):
        """Test a valid declaration produces a Unit with ExportSpecs."""
        unit = declare(
            "Storage",
            primary,
            [ResourceIntent("bucket", "Logs")],
            exports={"bucket_name": IntentRef("Logs", "name")},
            tags={"Team": "web"},
        )

        assert unit.name == "Storage"
        assert unit.locality == primary
        assert [i.logical_id for i in unit.intents] == ["Logs"]
        assert unit.exports["bucket_name"] == ExportSpec(IntentRef("Logs", "name"))
        assert unit.imports == frozenset()
        assert unit.tags == {"Team": "web"}
        assert unit.attributes == {}

    def test_name_required(self, primary):
        """Test an empty unit name is rejected."""
        with pytest.raises(ValidationError):
            declare("", primary, [])

    def test_duplicate_logical_id(self, primary):
        """Test two intents with the same logical id are rejected."""
        with pytest.raises(ValidationError, match="declared twice"):
            declare("U", primary, [ResourceIntent("bucket", "B"), ResourceIntent("bucket", "B")])

    def test_intent_dependency_must_come_first(self, primary):
        """Test intents may only depend on intents declared before them."""
        intents = [
            ResourceIntent("audit_trail", "Trail", depends_on=("Bucket",)),
            ResourceIntent("bucket", "Bucket"),
        ]
        with pytest.raises(ValidationError, match="not declared before"):
            declare("U", primary, intents)

    def test_intent_ref_must_come_first(self, primary):
        """Test IntentRefs in properties must point at earlier intents."""
        intents = [ResourceIntent("audit_trail", "Trail", {"bucket": IntentRef("Bucket", "name")})]
        with pytest.raises(ValidationError, match="Bucket.name"):
            declare("U", primary, intents)

    def test_export_of_unknown_intent(self, primary):
        """Test exports must reference a declared intent."""
        with pytest.raises(ValidationError, match="unknown intent"):
            declare("U", primary, [ResourceIntent("bucket", "B")], exports={"x": IntentRef("Nope", "arn")})

    def test_imports_inferred_from_properties(self, primary):
        """Test AttributeRefs nested anywhere in properties become imports."""
        vpc_id = AttributeRef("Network", "vpc_id")
        subnets = AttributeRef("Network", "private_subnet_ids")
        unit = declare(
            "Database",
            primary,
            [ResourceIntent("db_instance", "Db", {"vpc": {"id": vpc_id}, "subnets": [subnets]})],
        )

        assert unit.imports == frozenset({vpc_id, subnets})

    def test_imports_inferred_from_boundary_peers(self, primary):
        """Test a boundary rule peer that is an AttributeRef is an import."""
        cidr = AttributeRef("Network", "vpc_cidr")
        boundary = SecurityBoundary("db", ingress=(Rule(Peer.ipv4(cidr), 3306),))
        unit = declare("Database", primary, [ResourceIntent("security_group", "Sg", boundary=boundary)])

        assert cidr in unit.imports

    def test_re_exported_attribute_is_import(self, primary):
        """Test re-exporting another unit's attribute makes it an import."""
        ref = AttributeRef("Network", "vpc_id")
        unit = declare("Proxy", primary, [], exports={"vpc_id": ref})

        assert unit.imports == frozenset({ref})

    def test_self_import_rejected(self, primary):
        """Test a unit cannot consume its own export."""
        with pytest.raises(ValidationError, match="its own export"):
            declare(
                "U",
                primary,
                [ResourceIntent("bucket", "B", {"peer": AttributeRef("U", "x")})],
                exports={"x": IntentRef("B", "arn")},
            )

    def test_depends_on_recorded(self, primary):
        """Test explicit depends_on names are kept in order."""
        unit = declare("Network", primary, [], depends_on=["Governance"])

        assert unit.depends_on == ("Governance",)


class TestExports:
    """Tests for export() and UnitHandle."""

    def test_unit_export(self, primary):
        """Test Unit.export returns an AttributeRef."""
        unit = declare("U", primary, [ResourceIntent("bucket", "B")], exports={"arn": IntentRef("B", "arn")})

        assert unit.export("arn") == AttributeRef("U", "arn")

    def test_handle_export(self, primary):
        """Test handles expose the same exports as their unit."""
        unit = declare("U", primary, [ResourceIntent("bucket", "B")], exports={"arn": IntentRef("B", "arn")})
        handle = handle_for(unit)

        assert handle.name == "U"
        assert handle.locality == primary
        assert handle.export("arn") == AttributeRef("U", "arn")

    def test_unknown_export(self, primary):
        """Test referencing an undeclared export fails at declaration time."""
        unit = declare("U", primary, [ResourceIntent("bucket", "B")], exports={"arn": IntentRef("B", "arn")})

        with pytest.raises(ValidationError, match="does not export 'name'"):
            export(handle_for(unit), "name")

    def test_attribute_ref_str(self):
        """Test AttributeRef renders as producer.key."""
        assert str(AttributeRef("Compute", "load_balancer_hostname")) == "Compute.load_balancer_hostname"


class TestFindAttributeRefs:
    """Tests for find_attribute_refs()."""

    def test_walks_nested_values(self):
        """Test refs are found in dicts, lists and tuples."""
        a = AttributeRef("A", "x")
        b = AttributeRef("B", "y")
        value = {"one": [a, {"two": (b,)}], "three": "literal"}

        assert list(find_attribute_refs(value)) == [a, b]
