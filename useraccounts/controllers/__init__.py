"""
Request controllers for the account service.

Controllers compose the services into the registration, login, token
refresh, password reset and logout flows. Each takes request data, and
returns response data, a status code and headers; domain errors are turned
into responses here, and never propagate to the routes.
"""
