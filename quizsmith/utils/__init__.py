"""
Quizsmith Utilities Package

Contains:
- openai_client: Lazily-initialized OpenAI client with timeouts
- blob_store: Local and S3 storage for uploaded documents
"""
