"""Morph Bang

A privileged daemon that turns rename events into conversions:
- ``name.!ext`` converts to ``name.ext`` (or restores a stored ``ext`` version)
- ``name.!!ext`` does the same without backing up the current state
- a folder renamed to ``folder.!pdf`` becomes one merged PDF
"""
