"""Deterministic test doubles.

This module provides fakes for:
- Chat models that replay scripted turns (chat_model)
- Keyword-feature embeddings (embedder)
- The Isaacus HTTP API behind an httpx.MockTransport (isaacus)

These fakes keep tests isolated from remote services.
"""
