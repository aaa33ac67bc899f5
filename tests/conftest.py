import logging
import threading

import pytest

import config
from network_services import Interface

DEVICE_UUID = "uuid:aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee"


class FakeSocket:
    """Stands in for a UDP socket and records what the announcer does with it."""

    def __init__(self, *args, fail_option=None, short_by=0):
        self.args = args
        self.options = []
        self.sent = []
        self.bound = None
        self.closed = False
        self.fail_option = fail_option
        self.short_by = short_by
        self._lock = threading.Lock()

    def setsockopt(self, level, option, value):
        if option == self.fail_option:
            raise OSError(f"setsockopt {option} refused")
        self.options.append((level, option, value))

    def bind(self, address):
        self.bound = address

    def sendto(self, data, address):
        with self._lock:
            self.sent.append((data, address))
        return len(data) - self.short_by

    def close(self):
        self.closed = True


class SocketFactory:
    def __init__(self, **socket_kwargs):
        self.sockets = []
        self.socket_kwargs = socket_kwargs

    def __call__(self, *args):
        sock = FakeSocket(*args, **self.socket_kwargs)
        self.sockets.append(sock)
        return sock

    def sent(self):
        return [data for sock in self.sockets for data, _ in list(sock.sent)]


@pytest.fixture
def socket_factory():
    return SocketFactory()


@pytest.fixture
def fast_settings():
    settings = config.DEFAULT_SETTINGS.copy()
    settings.update(announce_interval=0.01, watch_interval=0.01)
    return settings


@pytest.fixture
def eth0():
    return Interface(2, 'eth0')


@pytest.fixture
def quiet_logger():
    logger = logging.getLogger('test-ssdp')
    logger.propagate = False
    return logger
