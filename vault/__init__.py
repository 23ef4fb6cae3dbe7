"""vault/ -- Protected submission content: encryption, signatures, persistence.

Layer rule: vault/ imports from core/ only. It does NOT import from api/,
auth/, or audit/. Authorization and auditing happen in the api/ layer.
"""
