"""
Authentication for the portal.

Design goals:
- Local email/password accounts (bcrypt) and OAuth sign-in (Google, Facebook, Twitter).
- Server-side sessions; the browser only holds a signed session id.
- Provider identities can be linked to and unlinked from an existing account.
"""
