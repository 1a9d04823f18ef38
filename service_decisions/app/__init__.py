"""
Decisions service application package.
"""
