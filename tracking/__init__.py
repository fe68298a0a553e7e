"""
Tracking package for the Fallible Resource library.
Contains the acquisition event log.
"""
