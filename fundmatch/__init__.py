"""Eligibility matching and application workflow for disaster-recovery funding."""

__version__ = "0.1.0"
