"""auth/ -- Authentication and authorization package for SubmitVault.

Layer rule: auth/ imports only stdlib, third-party libraries, core/ and audit/.
It does NOT import from api/ or vault/.
api/ imports from auth/, not the other way around.
"""
