"""
Integration tests: services wired by ServiceFactory over in-memory stores
"""
