"""
Models package for the Fallible Resource library.
Contains configuration, error, result and resource types.
"""
