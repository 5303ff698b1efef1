"""
Unit tests for the domain, application and infrastructure layers
"""
