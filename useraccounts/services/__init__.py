"""Service integrations: the account database, redis, and mail."""
