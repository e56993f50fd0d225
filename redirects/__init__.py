"""redirects/ -- Custom URL redirect engine driven by content/data/redirects.json.

Layer rule: redirects/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, auth/ or content/.
"""
