"""
Claims Kernel

Two-stage approval workflow for lecturer hours-worked claims:
- Closed claim status lifecycle with role-gated transitions
- Pure transition engine (injected clock, no I/O)
- Optimistic concurrency on claim rows
- Full auditability via hash chain
"""

__version__ = "0.1.0"
