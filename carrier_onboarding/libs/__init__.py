"""Clients for the external services the onboarding workflow talks to."""
