# network_services.py
import ipaddress
import logging
import socket
import struct
import sys
from collections import namedtuple
from threading import Event, Lock, Thread

import psutil

import config
from device_description import SERVICES
from ssdp import announcement_targets, make_notify_message

Interface = namedtuple('Interface', ['index', 'name'])

# name -> stand-in index, for adapters if_nametoindex can't resolve
_fallback_indices = {}
_fallback_lock = Lock()


class AnnounceError(Exception):
    """A NOTIFY datagram was not sent in full."""


def _fallback_index(name):
    """Stable negative stand-in index for an adapter the socket API can't index."""
    with _fallback_lock:
        if name not in _fallback_indices:
            _fallback_indices[name] = -(len(_fallback_indices) + 1)
            print(f"!!! Discovery Warning: No OS index for interface '{name}'. "
                  f"Tracking it by name and joining via its IPv4 address.")
        return _fallback_indices[name]


def list_interfaces():
    """Enumerates the system's network interfaces, ordered by index.

    psutil reports Windows adapters by their friendly names (e.g. "Wi-Fi"),
    which if_nametoindex rejects; those get a negative index from
    _fallback_index instead of being dropped.
    """
    interfaces = []
    for name in psutil.net_if_addrs():
        try:
            index = socket.if_nametoindex(name)
        except OSError:
            index = _fallback_index(name)
        interfaces.append(Interface(index, name))
    return sorted(interfaces)


def _to_ipv4(family, address):
    if family == socket.AF_INET:
        return address
    if family == socket.AF_INET6:
        try:
            mapped = ipaddress.IPv6Address(address.split('%', 1)[0]).ipv4_mapped
        except ValueError:
            return None
        return str(mapped) if mapped else None
    return None


def get_ipv4_addresses(name):
    """Current IPv4 addresses of an interface, resolved fresh on every call."""
    addresses = []
    for snic in psutil.net_if_addrs().get(name, []):
        ipv4 = _to_ipv4(snic.family, snic.address)
        if ipv4:
            addresses.append(ipv4)
    return addresses


def _membership_request(interface, address_source):
    group = socket.inet_aton(config.SSDP_ADDR)
    if sys.platform.startswith('linux') and interface.index > 0:
        # struct ip_mreqn: group, local address, interface index
        return struct.pack('=4s4si', group, socket.inet_aton('0.0.0.0'), interface.index)
    addresses = address_source(interface.name)
    if not addresses:
        raise OSError(f"Interface {interface.name} has no IPv4 address to join {config.SSDP_ADDR} on")
    return group + socket.inet_aton(addresses[0])


class InterfaceAnnouncer:
    """Joins the SSDP group on one interface and multicasts ssdp:alive forever.

    Every tick the interface's addresses are looked up again and one NOTIFY is
    sent per announcement target per IPv4 address.
    """

    def __init__(self, interface, device_uuid, port_source, stop_event, ssdp_logger=None,
                 settings=None, services=SERVICES, address_source=get_ipv4_addresses,
                 socket_factory=socket.socket):
        settings = settings or config.DEFAULT_SETTINGS
        self.interface = interface
        self.device_uuid = device_uuid
        self.targets = announcement_targets(device_uuid, services)
        self.interval = settings['announce_interval']
        self.ttl = settings['multicast_ttl']
        self.ssdp_logger = ssdp_logger or logging.getLogger('ssdp')
        self.sock = None
        self._port_source = port_source
        self._stop_event = stop_event
        self._address_source = address_source
        self._socket_factory = socket_factory

    def open_socket(self):
        sock = self._socket_factory(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(('', config.SSDP_PORT))
            mreq = _membership_request(self.interface, self._address_source)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
            # Linux takes the whole ip_mreqn here, everyone else just the address.
            multicast_if = mreq if len(mreq) == 12 else mreq[4:]
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, multicast_if)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, self.ttl)
        except OSError:
            sock.close()
            raise
        self.sock = sock

    def notify_alive(self, host):
        """Sends one ssdp:alive per target with LOCATION pointing at host."""
        sent = 0
        for target in self.targets:
            data = make_notify_message(host, target, config.NTS_ALIVE, self._port_source(), self.device_uuid)
            n = self.sock.sendto(data, (config.SSDP_ADDR, config.SSDP_PORT))
            self.ssdp_logger.info("sending %s", data.decode('utf-8'))
            if n != len(data):
                raise AnnounceError(f"sent {n} < {len(data)} bytes")
            sent += 1
        return sent

    def announce_once(self):
        sent = 0
        for host in self._address_source(self.interface.name):
            print(f"Discovery: Announcing on {self.interface.name} ({host})")
            sent += self.notify_alive(host)
        return sent

    def run(self):
        name = self.interface.name
        try:
            self.open_socket()
        except OSError as e:
            print(f"!!! SSDP Announcer on {name} (index {self.interface.index}): FAILED. Skipping interface. Error: {e}")
            return
        print(f"SSDP Announcer on {name}: Success.")
        try:
            while not self._stop_event.is_set():
                try:
                    self.announce_once()
                except (OSError, psutil.Error, AnnounceError) as e:
                    print(f"!!! NOTIFY Error on {name}: {e}. Retrying next tick.")
                self._stop_event.wait(self.interval)
        finally:
            self.sock.close()
            print(f"SSDP Announcer on {name}: Stopped.")


class InterfaceWatcher:
    """Polls the interface list and spawns one announcer per new interface index.

    Indices are never removed, so an interface that goes away keeps its slot.
    """

    def __init__(self, spawn, stop_event, interval=1.0, interface_source=list_interfaces):
        self.interval = interval
        self._spawn = spawn
        self._stop_event = stop_event
        self._interface_source = interface_source
        self._active = set()
        self._lock = Lock()

    @property
    def active(self):
        with self._lock:
            return frozenset(self._active)

    def mark_active(self, index):
        """Returns True only the first time an index is seen."""
        with self._lock:
            if index in self._active:
                return False
            self._active.add(index)
            return True

    def poll(self):
        spawned = []
        for interface in self._interface_source():
            if not self.mark_active(interface.index):
                continue
            print(f"Discovery: New interface {interface.name} (index {interface.index})")
            self._spawn(interface)
            spawned.append(interface)
        return spawned

    def run(self):
        while not self._stop_event.is_set():
            try:
                self.poll()
            except (OSError, psutil.Error) as e:
                print(f"!!! Discovery Error: Could not list network interfaces. Error: {e}")
            self._stop_event.wait(self.interval)


class DiscoveryService:
    """Runs the interface watcher and every per-interface announcer thread."""

    def __init__(self, device_uuid, port_source, ssdp_logger=None, settings=None, services=SERVICES,
                 interface_source=list_interfaces, address_source=get_ipv4_addresses,
                 socket_factory=socket.socket):
        self.settings = settings or config.DEFAULT_SETTINGS
        self.device_uuid = device_uuid
        self.port_source = port_source
        self.ssdp_logger = ssdp_logger
        self.services = services
        self.stop_event = Event()
        self.announcer_threads = {}
        self.thread = None
        self._address_source = address_source
        self._socket_factory = socket_factory
        self.watcher = InterfaceWatcher(self._start_announcer, self.stop_event,
                                        self.settings['watch_interval'], interface_source)

    def _start_announcer(self, interface):
        announcer = InterfaceAnnouncer(
            interface, self.device_uuid, self.port_source, self.stop_event, self.ssdp_logger,
            settings=self.settings, services=self.services,
            address_source=self._address_source, socket_factory=self._socket_factory,
        )
        thread = Thread(target=announcer.run, name=f"ssdp-{interface.name}", daemon=True)
        self.announcer_threads[interface.index] = thread
        thread.start()
        return thread

    def start(self):
        if self.thread and self.thread.is_alive():
            return
        self.thread = Thread(target=self.watcher.run, name="ssdp-watcher", daemon=True)
        self.thread.start()
        print("SSDP Discovery Service started.")

    def stop(self, timeout=2.0):
        self.stop_event.set()
        if self.thread:
            self.thread.join(timeout)
        for thread in list(self.announcer_threads.values()):
            thread.join(timeout)
        print("SSDP Discovery Service stopped.")

    def is_alive(self):
        threads = [self.thread] + list(self.announcer_threads.values())
        return any(t is not None and t.is_alive() for t in threads)
