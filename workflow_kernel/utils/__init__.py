"""Utility helpers for the workflow kernel."""

from workflow_kernel.utils.hashing import canonicalize_json, hash_payload

__all__ = ["canonicalize_json", "hash_payload"]
