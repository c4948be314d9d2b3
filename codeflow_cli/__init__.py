"""CodeFlow CLI: one-hop call graphs for the blast radius of a code change."""

__version__ = "0.3.0"
