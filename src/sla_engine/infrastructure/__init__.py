"""
Infrastructure
==============

Technical adapters shared by bounded contexts (database engine and sessions).
"""
