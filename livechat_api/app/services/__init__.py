"""
Service layer abstraction.

Each service encapsulates persistence for one concern (permissions,
department reads, department writes).  Services are instantiated per
request and injected into the resource layer, so they can be swapped
for other stores or test doubles without touching the handlers.
"""
