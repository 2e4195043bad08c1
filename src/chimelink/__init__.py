"""chimelink -- authentication and session core for Amazon Chime clients.

This package signs an account in through the Chime web login flow, keeps the
resulting session token alive, registers the device to learn the service
topology, and provides an HTTP channel that transparently renews the token
when the server rejects a request with HTTP 401.

Typical workflow::

    chimelink account add work --email me@example.com
    chimelink login                       # web login + device registration
    chimelink status busy                 # authenticated request

Modules:
    app: Typer application and CLI entry point.
    connection: The :class:`~chimelink.connection.Connection` that owns a
        session and reports failures to its host.
    models: Pydantic models for configuration and registration documents.
    config: XDG-aware configuration and account management.
    exceptions: Error hierarchy with exit-code mapping.
    document: XPath / JSON / regex extraction over HTTP responses.
    store: The session token store.
    registration: Device registration.
"""

__version__ = "0.3.0"
