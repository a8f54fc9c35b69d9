"""ArchGraph CLI: multi-level code graphs, security triage and architecture intelligence."""

__version__ = "2.0.0"
