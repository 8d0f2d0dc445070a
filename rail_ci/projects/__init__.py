"""
Projects, membership, repository content and abilities.
"""
