"""Loan module for the Archive.

This module manages loan requests: a requester asks to borrow, copy,
consult or digitize archival items, an archivist hands the items over,
and the items are later returned, individually or in batches.
"""
