"""
teach: Socratic session orchestration for guided, validated concept acquisition.

One learner, one topic, one session. The package sequences calls to an external
tutor oracle, interprets its verdicts, and only lets a concept count as mastered
once the learner has applied it to a transfer example.
"""

__version__ = "1.0.0"
