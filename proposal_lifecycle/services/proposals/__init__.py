"""Proposal lifecycle engine: state machine, versions, and decisions."""
