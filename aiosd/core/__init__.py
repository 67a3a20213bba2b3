"""Core package: config, session lifecycle, routing and the socket server."""
