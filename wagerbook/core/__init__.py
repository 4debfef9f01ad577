"""Core types and arithmetic for the Wagerbook escrow ledger.

This package contains pure, storage-agnostic building blocks:

- ``odds_math``      — Odd validation, saturating arithmetic, exposure/payout
- ``domain``         — Match / Bet records and their status enums
- ``errors``         — the error taxonomy shared by every operation
- ``config``         — ledger-wide constants and environment loading
- ``interfaces``     — ABCs for the ledger, randomness, notifications, storage
- ``random_outcome`` — bias-corrected score generator and randomness sources

Nothing in this package imports from ``wagerbook.services`` or
``wagerbook.models``.
"""
