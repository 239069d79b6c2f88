"""Proposal lifecycle engine backend package."""
