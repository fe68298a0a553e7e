"""
Utilities package for the Fallible Resource library.
Contains logging and manifest loading.
"""
