"""auth/ -- Authentication and authorization package for the RBAC API.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or posts/.
api/ and posts/ import from auth/, not the other way around.
"""
