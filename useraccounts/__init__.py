"""
User accounts service.

The user accounts service is a Flask application that provides a JSON API for
account registration, e-mail verification, authentication, and password
recovery. It is the primary repository for account credentials, and the
authority for the sessions that other services rely upon.

Context
-------
A new account is created unverified. The service mails a one-time code (OTP)
to the registered address; submitting that code proves possession of the
address and marks the account verified. Only verified accounts may log in.

Logging in yields a pair of tokens. The access token is a short-lived signed
JWT that other services can check without calling back to this service. The
refresh token is long-lived, but single-use: each refresh rotates it, and the
service keeps track of every outstanding refresh token in a distributed
key-value store so that it can be revoked on logout or on password change.

Password recovery follows the same pattern as verification. A code is mailed
to the address; a correct code grants a short-lived authorization to set a new
password, and setting it revokes every session of the account.
"""
