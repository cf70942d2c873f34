"""
Solux API - enrollment backend for the Solux virtual credit card demo.

Provides:
- One-time email session codes (send / verify)
- Issuing API proxy (account holders, cards, simulated authorizations)
- Enrollment orchestration and the multi-step enrollment wizard
"""

__version__ = "0.1.0"
