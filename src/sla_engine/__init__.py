"""
SLA Engine
==========

SLA policy resolution, deadline tracking and status reconciliation for
service requests.
"""

__version__ = "1.0.0"
