"""
Tour service application package.

Route handlers that proxy the upstream tour data API, wrapped in an
in-memory response cache owned by the service instance.
"""
