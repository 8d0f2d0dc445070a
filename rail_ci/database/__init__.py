"""
Database maintenance helpers: partitioning, loose foreign keys and background migrations.
"""
