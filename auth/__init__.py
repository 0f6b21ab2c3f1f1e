"""auth/ -- Authentication package for Teamgate: tokens, passwords, sessions.

Layer rule: auth/ imports from core/ and org/ plus third-party libraries.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
