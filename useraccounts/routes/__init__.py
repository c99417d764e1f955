"""HTTP routes for the account service."""
