"""
Shared API
==========

FastAPI middleware and exception handlers shared by all routers.
"""
