"""Application layer: billing use cases and their result DTOs"""
