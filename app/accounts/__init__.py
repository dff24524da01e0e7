"""
Accounts application.

Local stand-in for the identity provider and profile store the escrow
flow consumes: an email-based User (the subject of bearer JWTs) and a
Profile holding display names, contact completeness fields, membership
tier and the authoritative admin flag.

Usage:
    from accounts.models import User, Profile
    from accounts.services import RoleResolver, PartyDirectory
"""
