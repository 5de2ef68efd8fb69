"""Core module.

This module provides configuration, logging, error types, middleware and
metrics shared by the rest of the application.
"""
