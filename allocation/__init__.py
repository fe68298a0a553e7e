"""
Allocation package for the Fallible Resource library.
Contains the pinned slot allocator and native mutex bindings.
"""
