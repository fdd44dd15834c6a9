"""PassTalk, a conversational password manager."""

__version__ = "0.1.0"
