"""Bookstore backend: accounts, role-based permissions and subscriptions."""

__version__ = "1.0.0"
