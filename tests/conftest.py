"""Pytest configuration, Hypothesis profiles and an in-process fake Redis."""

import queue
import threading

import pytest
import redis
from hypothesis import settings

from grimjob.backends.redis import ResilientConnection
from grimjob.config import Config, Settings

# Register Hypothesis profiles
settings.register_profile("ci", max_examples=100)
settings.register_profile("dev", max_examples=20)

# Load dev profile by default, CI can override via --hypothesis-profile=ci
settings.load_profile("dev")


class FakeServer:
    """Counts accepted connections the way INFO's total_connections_received does."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.total_connections_received = 0

    def accept(self) -> int:
        with self._lock:
            self.total_connections_received += 1
            return self.total_connections_received


class FakeConnection:
    """Connection that gets a new server-side id every time it (re)connects."""

    def __init__(self, server: FakeServer) -> None:
        self._server = server
        self.client_id: int | None = None

    def connect(self) -> None:
        if self.client_id is None:
            self.client_id = self._server.accept()

    def disconnect(self) -> None:
        self.client_id = None


class FakePool:
    """Reuses released connections and blocks when exhausted, like BlockingConnectionPool."""

    def __init__(self, server: FakeServer, max_connections: int = 4, timeout: float = 0.2) -> None:
        self.server = server
        self.max_connections = max_connections
        self.timeout = timeout
        self._available: queue.LifoQueue[FakeConnection] = queue.LifoQueue()
        self._all: list[FakeConnection] = []
        self._lock = threading.Lock()
        self.in_use = 0
        self.disconnected = False

    def get_connection(self) -> FakeConnection:
        try:
            conn = self._available.get_nowait()
        except queue.Empty:
            with self._lock:
                if len(self._all) < self.max_connections:
                    conn = FakeConnection(self.server)
                    self._all.append(conn)
                else:
                    conn = None
            if conn is None:
                try:
                    conn = self._available.get(timeout=self.timeout)
                except queue.Empty:
                    raise redis.exceptions.ConnectionError("No connection available.")
        conn.connect()
        with self._lock:
            self.in_use += 1
        return conn

    def release(self, conn: FakeConnection) -> None:
        with self._lock:
            self.in_use -= 1
        self._available.put(conn)

    def disconnect(self) -> None:
        with self._lock:
            for conn in self._all:
                conn.disconnect()
        self.disconnected = True


class FakeRedis:
    """Single-connection client shaped like redis.Redis for the calls grimjob makes."""

    def __init__(self, connection_pool: FakePool, single_connection_client: bool = False) -> None:
        self.connection_pool = connection_pool
        self.connection: FakeConnection | None = connection_pool.get_connection()

    def info(self) -> dict:
        return {
            "redis_version": "7.2.4",
            "total_connections_received": self.connection_pool.server.total_connections_received,
        }

    def client_id(self) -> int:
        return self.connection.client_id

    def close(self) -> None:
        if self.connection is not None:
            self.connection_pool.release(self.connection)
            self.connection = None


@pytest.fixture
def fake_server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def fake_pool(fake_server: FakeServer) -> FakePool:
    return FakePool(fake_server)


@pytest.fixture
def resilient(fake_pool: FakePool) -> ResilientConnection:
    return ResilientConnection(fake_pool, client_class=FakeRedis)


@pytest.fixture
def config(resilient: ResilientConnection) -> Config:
    return Config(Settings(_env_file=None), connection=resilient)
