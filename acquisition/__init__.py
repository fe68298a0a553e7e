"""
Acquisition package for the Fallible Resource library.
Contains the resource factories, the builder and rollback/release helpers.
"""
