"""stepflow: keeps a visual workflow graph in sync with on-disk agent configuration and runs it."""

__version__ = "0.1.0"
