"""Iteration Bounded Context.

Responsible for walking paged native collections without violating the
collaborator's single-cursor-per-collection invariant:
- IndexedCollection, CursorCollection, MaterializedMap and their sessions
"""
