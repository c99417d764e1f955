"""Application-level tests for :mod:`useraccounts`."""
