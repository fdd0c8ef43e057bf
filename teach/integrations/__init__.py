"""
External integrations.

- http_oracle: TutorOracle backed by a remote reasoning service
"""

from .http_oracle import HttpOracle

__all__ = ["HttpOracle"]
