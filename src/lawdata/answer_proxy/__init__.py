"""Streaming answer proxy between the Lawdata front-end and an OpenAI-compatible API.

Checks the caller's origin (and optionally an access token), builds the legal
expert prompt, then re-streams the upstream completion in small text chunks.
"""

__all__ = []
