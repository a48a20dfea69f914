"""
GraphQL admin API for access policies and ticket status transitions.
"""
