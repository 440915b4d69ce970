"""
Core Module

Foundational components: configuration, clock, logging, exceptions and
resilience primitives.
"""
