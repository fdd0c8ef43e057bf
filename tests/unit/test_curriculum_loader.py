"""
Unit tests for curriculum loading.
"""

import json

import pytest

from teach.content.loader import Curriculum
from teach.core.errors import InvalidTopicError
from teach.core.models import Topic


class TestLoad:
    def test_bundled_recursion_curriculum(self, curriculum_file):
        curriculum = Curriculum.load(curriculum_file)
        topic = curriculum.topic("recursion")

        assert topic == Topic(id="recursion", label="Recursion")
        concepts = curriculum.concepts_for(topic)
        assert [c.id for c in concepts] == ["base_case", "self_reference", "stack_growth"]
        assert concepts[1].prerequisites == frozenset({"base_case"})

    def test_json_curriculum(self, tmp_path):
        path = tmp_path / "loops.json"
        path.write_text(json.dumps({
            "topics": [{"id": "loops", "concepts": [{"id": "for_loop"}, {"id": "while_loop"}]}]
        }))

        curriculum = Curriculum.load(path)

        assert curriculum.topics() == [Topic(id="loops", label="loops")]
        assert len(curriculum.concepts_for(Topic(id="loops", label=""))) == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidTopicError, match="not found"):
            Curriculum.load(tmp_path / "absent.yaml")

    def test_unparseable_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("topics: [unclosed")
        with pytest.raises(InvalidTopicError, match="unparseable"):
            Curriculum.load(path)

    def test_schema_violation(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("topics:\n  - label: no id here\n")
        with pytest.raises(InvalidTopicError, match="malformed"):
            Curriculum.load(path)

    def test_empty_file_has_no_topics(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert Curriculum.load(path).topics() == []


class TestLookup:
    @pytest.fixture
    def curriculum(self):
        return Curriculum.from_dict({
            "topics": [{
                "id": "recursion",
                "label": "Recursion",
                "concepts": [{"id": "base_case", "key_terms": ["stop"]}],
            }]
        })

    def test_unknown_topic(self, curriculum):
        with pytest.raises(InvalidTopicError) as exc:
            curriculum.topic("calculus")
        assert exc.value.topic_id == "calculus"

    def test_definition_lookup(self, curriculum):
        assert curriculum.definition("recursion", "base_case").key_terms == ["stop"]
        assert curriculum.definition("recursion", "missing") is None

    def test_concepts_carry_topic_id(self, curriculum):
        concepts = curriculum.concepts_for(curriculum.topic("recursion"))
        assert concepts[0].topic_id == "recursion"
