"""
Fee Ledger - invoice and payment reconciliation core for school fees.

A transactional ledger for student fee invoices with:
- Validated payment recording
- Serialized, atomic payment confirmation
- Invoice balances recomputed from confirmed payments
- Read-only consistency audits and an explicit repair path
"""

__version__ = "0.1.0"
