"""
Project releases.
"""
