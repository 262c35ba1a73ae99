"""movies/ -- The movie catalogue: the versioned records the API manages.

Layer rule: movies/ imports from core/ only. It knows nothing about auth/
or api/; permission checks happen in the request layer.
"""
