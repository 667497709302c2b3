"""CatalogStore tests — loading ``programs/`` and rejecting broken catalogs."""

import pytest
import yaml

from screening_flow.catalog import CatalogStore, parse_catalog
from screening_flow.models.question import (
    BooleanQuestion,
    ChoiceQuestion,
    DiagnosticTestQuestion,
    NumericQuestion,
)


def _write(path, data):
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")


MINIMAL = {
    "id": "tiny",
    "version": "0.1.0",
    "title": "Tiny",
    "questions": [{"id": "q1", "type": "boolean", "text": "?"}],
}


class TestPublishedCatalogs:
    """The shipped catalogs load and are well-formed."""

    def test_both_programs_loaded(self, store):
        assert set(store.catalogs) == {"advair_diskus", "crestor_direct"}
        assert [c.id for c in store.list_catalogs()] == ["advair_diskus", "crestor_direct"]

    def test_versions(self, advair, crestor):
        assert advair.version == "1.2.0"
        assert crestor.version == "2.0.1"

    def test_question_types(self, crestor):
        assert isinstance(crestor.get_question("age_check"), BooleanQuestion)
        assert isinstance(crestor.get_question("ldl_check"), NumericQuestion)
        assert isinstance(crestor.get_question("risk_factors"), ChoiceQuestion)
        assert isinstance(crestor.get_question("cholesterol_test"), DiagnosticTestQuestion)

    def test_external_mapping_alias(self, crestor):
        mapping = crestor.get_question("ldl_check").external_mapping
        assert mapping.path == "Observation.ldl"
        assert mapping.display_name == "LDL Cholesterol Level"

    def test_mapped_questions(self, advair):
        assert [q.id for q in advair.mapped_questions()] == [
            "age_check", "diagnosis_check", "recent_checkup",
        ]

    def test_lookup_helpers(self, advair):
        assert advair.total_questions == 6
        assert advair.index_of("heart_conditions") == 4
        assert advair.index_of("nope") is None
        assert advair.question_at(6) is None
        assert advair.question_at(-1) is None

    def test_unknown_program(self, store):
        with pytest.raises(KeyError, match="Unknown program"):
            store.load_catalog("tylenol")


class TestLoading:
    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            CatalogStore(catalog_dir=tmp_path / "missing").load()

    def test_loads_yaml_files(self, tmp_path):
        _write(tmp_path / "tiny.yaml", MINIMAL)
        store = CatalogStore(catalog_dir=tmp_path)
        store.load()
        assert store.load_catalog("tiny").title == "Tiny"

    def test_duplicate_program_id(self, tmp_path):
        _write(tmp_path / "a.yaml", MINIMAL)
        _write(tmp_path / "b.yaml", MINIMAL)
        with pytest.raises(ValueError, match="Duplicate catalog id"):
            CatalogStore(catalog_dir=tmp_path).load()

    def test_add_replaces_version(self, tmp_path):
        store = CatalogStore(catalog_dir=tmp_path)
        store.add(parse_catalog(MINIMAL))
        store.add(parse_catalog({**MINIMAL, "version": "0.2.0"}))
        assert store.load_catalog("tiny").version == "0.2.0"


class TestValidation:
    def test_unknown_question_type(self):
        raw = {**MINIMAL, "questions": [{"id": "q1", "type": "slider", "text": "?"}]}
        with pytest.raises(ValueError, match="Unknown question type 'slider'"):
            parse_catalog(raw)

    def test_duplicate_question_id(self):
        q = {"id": "q1", "type": "boolean", "text": "?"}
        with pytest.raises(ValueError, match="duplicate question id"):
            parse_catalog({**MINIMAL, "questions": [q, q]})

    def test_rule_on_unknown_question(self):
        rule = {"question_id": "ghost", "operator": "equals", "value": True, "action": "show"}
        with pytest.raises(ValueError, match="unknown question 'ghost'"):
            parse_catalog({**MINIMAL, "rules": [rule]})

    def test_hide_rule_needs_target(self):
        rule = {"question_id": "q1", "operator": "equals", "value": True, "action": "hide"}
        with pytest.raises(ValueError, match="needs target_question_id"):
            parse_catalog({**MINIMAL, "rules": [rule]})

    def test_outcome_condition_on_unknown_question(self):
        logic = {"rules": [{"when": [{"question_id": "ghost", "op": "eq", "value": 1}],
                            "outcome": "do_not_use"}]}
        with pytest.raises(ValueError, match="outcome condition"):
            parse_catalog({**MINIMAL, "outcome_logic": logic})

    def test_choice_needs_options(self):
        q = {"id": "q1", "type": "choice", "text": "?", "options": []}
        with pytest.raises(ValueError, match="needs options"):
            parse_catalog({**MINIMAL, "questions": [q]})

    def test_numeric_bounds_ordered(self):
        q = {"id": "q1", "type": "numeric", "text": "?", "min": 10, "max": 1}
        with pytest.raises(ValueError, match="min must be <= max"):
            parse_catalog({**MINIMAL, "questions": [q]})

    def test_not_a_mapping(self):
        with pytest.raises(ValueError, match="must contain a mapping"):
            parse_catalog(["questions"])
