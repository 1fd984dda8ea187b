"""Keys, signed discovery entries, entry stores and a WSGI discovery service for dmsg networks."""

__version__ = "0.1.0"

__all__ = [
    "buildinfo",
    "catch",
    "cipher",
    "client_config",
    "disc_client",
    "disc_mock",
    "discord",
    "discovery_api",
    "entry",
    "http_message",
    "service_flags",
    "signals",
    "store",
]