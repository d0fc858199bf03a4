"""Wallet verification for battle registration.

The Solana and HowRare adapters live in ``solana_api``; the matching rules
that decide which holdings may fight live in ``eligibility``.
"""
