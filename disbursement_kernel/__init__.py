"""
Disbursement Kernel

Multi-signature approval and milestone-gated release of charity funds:
- Owner/cosigner authorization with a per-charity signature policy
- Signature quorum with race-safe counting
- Budget ledger charged atomically on execution
- Milestone verification and release, with refund of the remainder
- Append-only audit trail
"""

__version__ = "0.1.0"
