"""Domain layer: value objects, entities, canonical events.

This package defines the primitives that every other layer depends on
but never modifies.  Everything here is immutable.
"""
