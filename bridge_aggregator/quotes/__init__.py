"""
Quotes Module

Request validation, normalized quote models and the bridge provider
adapters.
"""
