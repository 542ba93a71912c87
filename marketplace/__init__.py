"""
Marketplace authentication service.

Signs users of the procurement marketplace in through the Keycloak identity
broker and provisions their accounts and sessions.
"""

__version__ = "1.0.0"
