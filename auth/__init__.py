"""auth/ -- Authentication package for X Reply Manager.

Twitter OAuth 2.0 (state + PKCE), local users, server-side sessions and
encrypted Twitter credentials.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, web/, or replies/.
api/ and web/ import from auth/, not the other way around.
"""
