"""
Operational scripts for the manifest service.
"""
