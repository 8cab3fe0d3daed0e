"""Promoter: multi-environment deployment orchestrator."""

__version__ = "0.1.0"
