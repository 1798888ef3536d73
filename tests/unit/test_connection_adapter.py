"""
Unit tests for ConnectionAdapter abstract interface.

Tests verify the abstract base class contract and the exception
hierarchy, using the mock implementation from conftest.
"""

import logging

import pytest

from lib.connection import (
    AuthenticationError,
    ConnectionAdapter,
    ConnectionError,
    ConnectionState,
    NotConnectedError,
    ProtocolError,
)


class TestConnectionAdapter:
    """Test suite for ConnectionAdapter abstract interface."""

    def test_cannot_instantiate_abstract_class(self):
        """Test that ConnectionAdapter cannot be instantiated directly."""
        with pytest.raises(TypeError):
            ConnectionAdapter()

    def test_initial_state(self, mock_connection):
        assert mock_connection.state is ConnectionState.DISCONNECTED
        assert not mock_connection.is_connected
        assert mock_connection.last_error is None

    def test_default_logger_named_after_class(self, mock_connection):
        assert mock_connection.logger.name == 'MockConnection'

    def test_custom_logger(self, mock_connection):
        custom = logging.getLogger('custom.chat')
        conn = type(mock_connection)(logger=custom)
        assert conn.logger is custom

    def test_errored_state_records_reason(self, mock_connection):
        mock_connection._set_state(ConnectionState.ERRORED, 'socket closed')
        assert mock_connection.state is ConnectionState.ERRORED
        assert mock_connection.last_error == 'socket closed'
        assert not mock_connection.is_connected

    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self, mock_connection):
        await mock_connection.connect()
        assert mock_connection.is_connected

        await mock_connection.disconnect()
        assert mock_connection.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_context_manager(self, mock_connection):
        async with mock_connection as conn:
            assert conn is mock_connection
            assert conn.is_connected

        assert mock_connection.connect_count == 1
        assert mock_connection.disconnect_count == 1
        assert not mock_connection.is_connected

    @pytest.mark.asyncio
    async def test_recv_events_requires_connection(self, mock_connection):
        with pytest.raises(NotConnectedError):
            async for _ in mock_connection.recv_events():
                pass

    @pytest.mark.asyncio
    async def test_recv_events_in_order(self, mock_connection):
        mock_connection.push('message', {'user': 'a', 'content': '1'})
        mock_connection.push('message', {'user': 'b', 'content': '2'})
        await mock_connection.connect()

        events = [event async for event in mock_connection.recv_events()]

        assert [data['content'] for _, data in events] == ['1', '2']


class TestExceptionHierarchy:
    """All connection errors can be caught with one except clause."""

    @pytest.mark.parametrize("error_class", [
        AuthenticationError,
        NotConnectedError,
        ProtocolError,
    ])
    def test_subclasses_connection_error(self, error_class):
        assert issubclass(error_class, ConnectionError)
        with pytest.raises(ConnectionError):
            raise error_class("boom")

    def test_not_builtin_connection_error(self):
        import builtins
        assert ConnectionError is not builtins.ConnectionError
