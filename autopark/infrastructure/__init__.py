"""Infrastructure layer: stores, document mapping, configuration and wiring"""
