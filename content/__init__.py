"""content/ -- Posts, tags and the cache-invalidation rules for post mutations.

Layer rule: content/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, auth/, or redirects/.
"""
