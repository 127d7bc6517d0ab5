"""
Party Ledger kernel.

Payment allocation and ledger bookkeeping for a small-business ERP:
- Fixed-point money with half-up rounding
- Atomic payment write units with row locking
- Idempotent payment reversal
- Append-only bank transaction ledger
- Read-side balance rollups and verification
"""

__version__ = "0.1.0"
