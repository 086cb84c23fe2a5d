"""
Tenant access package.

WHY: Everything that decides what a principal may see or change lives here:
the per-request AccessScope, the resolver that builds it from the membership
graph, and the guard that checks each record against it.

Modules are imported directly (hostelcore.access.scope, .resolver, .guard);
the membership services depend on scope and guard while the resolver depends
on the membership services.
"""
