"""Command-line interface for the teach session orchestrator."""
