"""
Adapters for services the tour service depends on.
"""
