"""
Usernet manifest service.
"""
