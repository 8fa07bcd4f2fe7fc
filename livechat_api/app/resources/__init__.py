"""
Request handlers that gate, validate and delegate to services.
"""
