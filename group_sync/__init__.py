"""
Group Sync - Synchronize group memberships from external directory providers.

This package walks groups and members in identity providers (Keycloak realms,
Azure AD via Microsoft Graph) and normalizes them into canonical groups that an
access-control system can apply.
"""

__version__ = "1.0.0"
__author__ = "Group Sync Team"
