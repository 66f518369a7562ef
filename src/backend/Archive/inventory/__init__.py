"""Inventory module for the Archive.

Holds the physical archival units (documents, boxes, volumes) and their
current availability, along with the lookup used to find them by text or
by scanned code.
"""
