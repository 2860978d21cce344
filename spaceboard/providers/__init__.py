"""Concrete implementations of the interfaces in ``spaceboard.interfaces``."""
