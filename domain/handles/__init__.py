"""Handles Bounded Context.

Responsible for native resource lifecycle:
- Value Objects: HandleKind
- Registry: Handle, HandleRegistry (open/closed latch, child cascade)
"""
