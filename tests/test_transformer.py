"""Tests for Rally <-> MCP field transformation."""
import copy

import pytest

from rally_core.transformer import (
    FIELD_MAPPINGS,
    IRREGULAR_FIELD_NAMES,
    METADATA_FIELD_NAMES,
    camel_to_kebab,
    field_name_to_external,
    field_name_to_internal,
    kebab_to_pascal,
    to_external,
    to_internal,
    validate_round_trip,
)


class TestFieldNames:
    """Test single field name conversion."""

    @pytest.mark.parametrize("rally, mcp", [
        ("Name", "name"),
        ("CurrentProjectName", "current-project-name"),
        ("FormattedID", "formatted-id"),
        ("ObjectID", "object-id"),
        ("PlanEstimate", "plan-estimate"),
        ("ToDo", "to-do"),
        ("APIIntegration", "api-integration"),
    ])
    def test_standard_fields(self, rally, mcp):
        """Test PascalCase names convert to kebab-case and back."""
        assert field_name_to_internal(rally) == mcp
        assert field_name_to_external(mcp) == rally

    @pytest.mark.parametrize("rally, mcp", [
        ("_ref", "metadata-ref"),
        ("_type", "metadata-type"),
        ("_refObjectName", "metadata-ref-object-name"),
        ("_refObjectUUID", "metadata-ref-object-uuid"),
        ("_objectVersion", "metadata-object-version"),
        ("_rallyAPIMajor", "metadata-rally-api-major"),
    ])
    def test_metadata_prefix(self, rally, mcp):
        """Test `_` metadata fields use the metadata- prefix."""
        assert field_name_to_internal(rally) == mcp
        assert field_name_to_external(mcp) == rally

    @pytest.mark.parametrize("rally, mcp", [
        ("c_Foo", "custom-foo"),
        ("c_MyCustomField", "custom-my-custom-field"),
        ("c_BusinessValue", "custom-business-value"),
        ("c_CustomPriority", "custom-custom-priority"),
    ])
    def test_custom_prefix(self, rally, mcp):
        """Test `c_` custom fields use the custom- prefix."""
        assert field_name_to_internal(rally) == mcp
        assert field_name_to_external(mcp) == rally

    def test_acronym_split_before_case_split(self):
        """Test an acronym run stays together when followed by a word."""
        assert camel_to_kebab("APIIntegration") == "api-integration"
        assert camel_to_kebab("HTTPServerURL") == "http-server-url"
        assert camel_to_kebab("Version2Name") == "version2-name"

    def test_unknown_names_fall_back_to_pascal_case(self):
        """Test names outside the irregular table do not recover acronyms."""
        assert field_name_to_external("my-html-field") == "MyHtmlField"
        assert field_name_to_external("custom-my-html-field") == "c_MyHtmlField"
        assert kebab_to_pascal("current-project-name") == "CurrentProjectName"

    def test_todo_alias(self):
        """Test both todo spellings map to Rally's ToDo."""
        assert field_name_to_external("todo") == "ToDo"
        assert field_name_to_external("to-do") == "ToDo"


class TestRoundTrip:
    """Test the round-trip law over the supported vocabulary."""

    @pytest.mark.parametrize("kebab, rally", sorted(IRREGULAR_FIELD_NAMES.items()))
    def test_irregular_table_to_external(self, kebab, rally):
        """Test every table entry converts to its exact Rally form."""
        assert field_name_to_external("metadata-" + kebab) == "_" + rally
        assert field_name_to_external("custom-" + kebab) == "c_" + rally
        if not kebab.startswith("custom-"):
            assert field_name_to_external(kebab) == rally

    @pytest.mark.parametrize("rally", sorted(set(IRREGULAR_FIELD_NAMES.values())))
    def test_irregular_table_rally_names_round_trip(self, rally):
        """Test every Rally name in the table survives Rally -> MCP -> Rally."""
        # A plain CustomPriority reads back as a custom field; only prefixed forms are supported
        if not field_name_to_internal(rally).startswith("custom-"):
            assert validate_round_trip(rally, "to_internal")
        assert validate_round_trip("_" + rally, "to_internal")
        assert validate_round_trip("c_" + rally, "to_internal")

    @pytest.mark.parametrize("kebab, rally", sorted(METADATA_FIELD_NAMES.items()))
    def test_metadata_table_round_trip(self, kebab, rally):
        """Test lowercase-initial metadata names round trip under the metadata prefix."""
        assert field_name_to_external("metadata-" + kebab) == "_" + rally
        assert validate_round_trip("_" + rally, "to_internal")

    @pytest.mark.parametrize("rally", ["Type", "Ref", "ObjectVersion", "RefObjectName"])
    def test_plain_names_shadowing_metadata(self, rally):
        """Test plain fields spelled like metadata names keep their capital initial."""
        assert validate_round_trip(rally, "to_internal")
        assert to_external(to_internal({rally: 1})) == {rally: 1}

    @pytest.mark.parametrize("rally", sorted(FIELD_MAPPINGS))
    def test_field_mappings_are_consistent(self, rally):
        """Test FIELD_MAPPINGS agrees with the conversion functions."""
        mapping = FIELD_MAPPINGS[rally]
        assert field_name_to_internal(rally) == mapping["mcp_field"]
        assert field_name_to_external(mapping["mcp_field"]) == rally

    @pytest.mark.parametrize("rally", ["Name", "Description", "Owner", "Project", "Iteration", "Severity"])
    def test_plain_names(self, rally):
        """Test synthetic plain names round trip in both directions."""
        assert validate_round_trip(rally, "to_internal")
        assert validate_round_trip(field_name_to_internal(rally), "to_external")

    def test_known_asymmetry_is_reported(self):
        """Test validate_round_trip reports acronym loss outside the table."""
        assert not validate_round_trip("MyHTMLField", "to_internal")

    def test_invalid_direction(self):
        """Test an unknown direction is rejected."""
        with pytest.raises(ValueError):
            validate_round_trip("Name", "sideways")


class TestRecordTransformation:
    """Test whole-record transformation."""

    @pytest.mark.parametrize("value", [None, 0, 3.5, "FormattedID", True, False])
    def test_primitives_pass_through(self, value):
        """Test primitives are returned unchanged."""
        assert to_internal(value) is value
        assert to_external(value) is value

    def test_empty_containers(self):
        """Test empty mappings and arrays come back empty."""
        assert to_internal({}) == {}
        assert to_internal([]) == []
        assert to_external({}) == {}
        assert to_external([]) == []

    def test_story_record_round_trip(self):
        """Test a realistic story record survives both directions."""
        story = {
            "_ref": "https://rally1.rallydev.com/slm/webservice/v2.0/hierarchicalrequirement/123",
            "_refObjectName": "Login page",
            "_type": "HierarchicalRequirement",
            "FormattedID": "US123",
            "ObjectID": 123,
            "Name": "Login page",
            "PlanEstimate": 5,
            "ScheduleState": "In-Progress",
            "c_BusinessValue": "High",
            "Owner": {"_ref": "/user/1", "_refObjectName": "Ada"},
            "Tasks": [{"FormattedID": "TA1", "ToDo": 4}, {"FormattedID": "TA2", "ToDo": 0}],
        }

        internal = to_internal(story)

        assert internal["metadata-ref"] == story["_ref"]
        assert internal["formatted-id"] == "US123"
        assert internal["plan-estimate"] == 5
        assert internal["custom-business-value"] == "High"
        assert internal["owner"] == {"metadata-ref": "/user/1", "metadata-ref-object-name": "Ada"}
        assert internal["tasks"][0] == {"formatted-id": "TA1", "to-do": 4}
        assert to_external(internal) == story

    def test_structure_preserved(self):
        """Test key counts, list lengths and order survive transformation."""
        record = {"Items": [1, "two", None, {"SubName": 3}, [4, 5]], "Count": 5}
        result = to_internal(record)

        assert len(result) == len(record)
        assert result["items"][:3] == [1, "two", None]
        assert result["items"][3] == {"sub-name": 3}
        assert result["items"][4] == [4, 5]

    def test_top_level_array(self):
        """Test arrays of records transform element-wise."""
        assert to_internal([{"Name": "a"}, {"Name": "b"}]) == [{"name": "a"}, {"name": "b"}]

    def test_tuples_become_lists(self):
        """Test tuples are emitted as lists."""
        assert to_internal({"Tags": ({"Name": "x"},)}) == {"tags": [{"name": "x"}]}

    def test_non_string_keys_kept(self):
        """Test integer keys are left alone."""
        assert to_internal({1: {"Name": "x"}}) == {1: {"name": "x"}}

    def test_input_not_mutated(self):
        """Test the source record is left untouched."""
        record = {"FormattedID": "DE1", "Children": [{"ObjectID": 1}]}
        snapshot = copy.deepcopy(record)

        to_internal(record)
        to_external({"formatted-id": "DE1"})

        assert record == snapshot

    @pytest.mark.parametrize("depth", [150, 5000])
    def test_deep_nesting(self, depth):
        """Test nesting deeper than the recursion limit is handled."""
        record: dict = {"Leaf": True}
        for _ in range(depth):
            record = {"Child": record}

        result = to_internal(record)
        for _ in range(depth):
            result = result["child"]
        assert result == {"leaf": True}

    def test_mixed_arrays(self):
        """Test arrays mixing records, primitives and nested arrays."""
        record = [{"Name": "a"}, 1, [{"ObjectID": 2}], None, "text"]
        assert to_internal(record) == [{"name": "a"}, 1, [{"object-id": 2}], None, "text"]
        assert to_external(to_internal(record)) == record
