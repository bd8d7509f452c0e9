"""
Quizsmith Schemas Package

Pydantic models for request/response validation.
"""
