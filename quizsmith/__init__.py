"""Quizsmith: document-to-quiz generation backend."""

__version__ = "1.0.0"
