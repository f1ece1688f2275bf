"""Carrier onboarding: eligibility gates, identity checks and payout setup."""
