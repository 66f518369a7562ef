"""Archive project package.

Holds the Django settings, URL routing and the shared helpers used by the
inventory and loan apps.
"""
