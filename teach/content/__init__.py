"""
Content module for curriculum definitions.

Components:
- loader: Curriculum files (YAML/JSON) -> topics and concepts
"""

from .loader import ConceptDefinition, Curriculum, TopicDefinition

__all__ = ["ConceptDefinition", "Curriculum", "TopicDefinition"]
