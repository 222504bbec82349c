"""
Mail digest package.

This package polls a mailbox, stores the messages locally, condenses each
day's mail into an LLM-generated digest grouped by topic, and emails the
digest to a recipient.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
