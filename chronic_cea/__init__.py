"""Cohort Markov cost-effectiveness analysis of chronic disease management."""

__version__ = "0.1.0"
