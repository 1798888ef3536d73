"""
Connection-specific exceptions.

This module defines the exception hierarchy for chat connection errors.
All exceptions inherit from ConnectionError for easy catching.
"""


class ConnectionError(Exception):
    """
    Base exception for connection errors.

    All connection-related exceptions inherit from this class,
    so the application can degrade the chat pane with a single
    except clause.
    """
    pass


class AuthenticationError(ConnectionError):
    """
    The chat server rejected the (anonymous) login.

    Raised when the server answers the login handshake with a
    failure notice instead of a welcome.
    """
    pass


class NotConnectedError(ConnectionError):
    """
    Operation requires active connection.

    Raised when attempting to read events without an established
    connection.
    """
    pass


class ProtocolError(ConnectionError):
    """
    Platform protocol violation.

    Raised when the server sends data that cannot be understood
    during the handshake.
    """
    pass
