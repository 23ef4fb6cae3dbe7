"""audit/ -- Append-only audit trail for SubmitVault.

Layer rule: audit/ imports only stdlib + third-party libraries and core/.
auth/, vault/ and api/ import from audit/, not the other way around.
"""
