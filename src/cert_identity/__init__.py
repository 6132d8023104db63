"""
cert_identity — X.509 client certificate login against an LDAP directory.

Resolves a presented client certificate to a directory entry (optionally
cross-checking the certificate stored on that entry), and interrupts logins
with soon-to-expire certificates with a resumable warning.

Built on the Railway-Oriented Programming (ROP) framework for
explicit, composable, functional error handling.
"""

__version__ = "0.1.0"
