"""
Curriculum loader.

Reads topic decompositions from YAML or JSON files. Each topic lists its
concepts in declaration order, with prerequisites and the probe material the
scripted oracle draws on:

    topics:
      - id: recursion
        label: Recursion
        concepts:
          - id: base_case
            prerequisites: []
            key_terms: [stop, smallest]
            probes: ["When should a recursive function stop calling itself?"]
            simpler_probes: ["What happens if a function calls itself forever?"]
            transfer_probes: ["What is the base case when summing a list recursively?"]
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from teach.core.errors import InvalidTopicError
from teach.core.models import Concept, Topic


class ConceptDefinition(BaseModel):
    """One concept as written in a curriculum file."""

    id: str = Field(min_length=1)
    label: str = ""
    description: str = ""
    prerequisites: list[str] = Field(default_factory=list)
    key_terms: list[str] = Field(default_factory=list)
    probes: list[str] = Field(default_factory=list)
    simpler_probes: list[str] = Field(default_factory=list)
    transfer_probes: list[str] = Field(default_factory=list)

    def to_concept(self, topic_id: str) -> Concept:
        return Concept(
            id=self.id,
            topic_id=topic_id,
            label=self.label,
            prerequisites=frozenset(self.prerequisites),
            description=self.description,
        )


class TopicDefinition(BaseModel):
    """A topic and its ordered concepts."""

    id: str = Field(min_length=1)
    label: str = ""
    concepts: list[ConceptDefinition] = Field(default_factory=list)


class CurriculumFile(BaseModel):
    topics: list[TopicDefinition] = Field(default_factory=list)


class Curriculum:
    """
    Collaborator that decomposes topics into concepts.

    Satisfies the interface the SessionController needs: concepts_for(topic).
    """

    def __init__(self, topics: list[TopicDefinition]):
        self._topics: dict[str, TopicDefinition] = {t.id: t for t in topics}

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: str = "<dict>") -> Curriculum:
        try:
            parsed = CurriculumFile.model_validate(data)
        except ValidationError as e:
            raise InvalidTopicError(source, f"malformed curriculum: {e}") from e
        return cls(parsed.topics)

    @classmethod
    def load(cls, path: Path | str) -> Curriculum:
        """
        Load a curriculum from a .yaml/.yml or .json file.

        Raises:
            InvalidTopicError: unreadable or malformed file
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                if path.suffix.lower() in (".yaml", ".yml"):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
        except FileNotFoundError as e:
            raise InvalidTopicError(str(path), "curriculum file not found") from e
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise InvalidTopicError(str(path), f"unparseable curriculum: {e}") from e

        curriculum = cls.from_dict(data or {}, source=str(path))
        logger.debug(f"Loaded {len(curriculum._topics)} topic(s) from {path}")
        return curriculum

    def topics(self) -> list[Topic]:
        return [Topic(id=t.id, label=t.label or t.id) for t in self._topics.values()]

    def topic(self, topic_id: str) -> Topic:
        definition = self._topic_definition(topic_id)
        return Topic(id=definition.id, label=definition.label or definition.id)

    def concepts_for(self, topic: Topic) -> list[Concept]:
        definition = self._topic_definition(topic.id)
        return [c.to_concept(topic.id) for c in definition.concepts]

    def definition(self, topic_id: str, concept_id: str) -> ConceptDefinition | None:
        for concept in self._topic_definition(topic_id).concepts:
            if concept.id == concept_id:
                return concept
        return None

    def _topic_definition(self, topic_id: str) -> TopicDefinition:
        try:
            return self._topics[topic_id]
        except KeyError:
            raise InvalidTopicError(topic_id, "not found in curriculum") from None
