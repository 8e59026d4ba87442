"""
Pydantic models for request/response validation and stored documents.

Models reflect data structure; lifecycle rules live in the services.
"""
