"""
Core application modules.
Contains configuration, logging, metrics, resilience and database access.
"""
