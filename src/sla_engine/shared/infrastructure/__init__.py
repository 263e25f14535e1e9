"""
Shared Infrastructure
=====================

Low-level technical concerns reused by every module:
- Structured logging setup
"""
