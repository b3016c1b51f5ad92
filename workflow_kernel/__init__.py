"""
Workflow Kernel

A standalone engine for the user / transaction / approval workflow of a
financial platform:
- Role-based authorization (Regular, Manager, Admin)
- Transaction lifecycle (Pending -> Active -> Completed, or Rejected)
- Approval lifecycle linked one-to-one with its transaction
- Serialized, atomic commands with an ordered event stream
"""

__version__ = "0.1.0"
