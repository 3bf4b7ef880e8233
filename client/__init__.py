"""client/ -- Browser-side session controller for SegreGate.

Layer rule: client/ talks to the API over HTTP only. It does NOT import from
api/, auth/, or core/.
"""
