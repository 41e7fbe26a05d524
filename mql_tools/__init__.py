"""MetaEditor compiler wrapper, runtime log tailer and identifier spellcheck."""

__version__ = "0.1.0"
