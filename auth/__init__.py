"""auth/ -- Authentication and authorization package for Inkpost.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, content/, or redirects/.
api/ imports from auth/, not the other way around.
"""
