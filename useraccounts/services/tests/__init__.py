"""Tests for :mod:`useraccounts.services`."""
