"""State layer.

Owns every piece of mutable engine state: persisted settings, favorites,
override selection and the event bus that announces changes.
"""
