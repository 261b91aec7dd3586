"""
LedgerLink - Ledger Core Package

Multi-currency wallets, transactions and bills for a personal finance
tracker, with recurring bill generation and automatic payment.

DESIGN PRINCIPLES:
1. A wallet balance only moves together with the transaction that moved it
2. Validate before touching the store
3. Background processing degrades, it never blocks
4. Every balance change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
