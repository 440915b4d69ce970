"""
API Module

FastAPI application, routes, dependencies and middleware.
"""
