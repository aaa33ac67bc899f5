import socket
import sys
from datetime import datetime

import config


class MalformedMessage(ValueError):
    pass


def parse_ssdp_message(data):
    """Splits an SSDP datagram into (start_line, headers).

    Header names are upper-cased and kept in wire order. The block must use
    CRLF line endings and end with an empty line.
    """
    text = data.decode('utf-8') if isinstance(data, bytes) else data
    if not text.endswith('\r\n\r\n'):
        raise MalformedMessage("Header block is not terminated by an empty CRLF line")
    lines = text[:-4].split('\r\n')
    if any('\n' in line or '\r' in line for line in lines):
        raise MalformedMessage("Bare CR or LF inside the header block")
    start_line, headers = lines[0], {}
    for line in lines[1:]:
        name, sep, value = line.partition(':')
        if not sep or not name.strip():
            raise MalformedMessage(f"Not a header line: {line!r}")
        headers[name.strip().upper()] = value.strip()
    return start_line, headers


def open_listener(listen_ip='0.0.0.0'):
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind(('', config.SSDP_PORT))
    mreq = socket.inet_aton(config.SSDP_ADDR) + socket.inet_aton(listen_ip)
    sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
    return sock


def main(listen_ip='0.0.0.0'):
    """Prints every NOTIFY heard on the SSDP group. Useful to watch the announcer from another host."""
    try:
        sock = open_listener(listen_ip)
    except OSError as e:
        print(f"!!! ERROR: Could not join {config.SSDP_ADDR} on {listen_ip}. Error: {e}")
        return 1
    print(f"Listening for NOTIFY on {config.SSDP_ADDR}:{config.SSDP_PORT} via {listen_ip}...")
    try:
        while True:
            data, addr = sock.recvfrom(2048)
            try:
                start_line, headers = parse_ssdp_message(data)
            except (MalformedMessage, UnicodeDecodeError) as e:
                print(f"Ignoring malformed datagram from {addr[0]}: {e}")
                continue
            if not start_line.startswith('NOTIFY'):
                continue
            print(f"\n[{datetime.now().strftime('%H:%M:%S')}] {headers.get('NTS')} from {addr[0]}")
            for name in ('NT', 'USN', 'LOCATION'):
                print(f"  {name}: {headers.get(name)}")
    except KeyboardInterrupt:
        print("\nListener stopped.")
    finally:
        sock.close()
    return 0


if __name__ == '__main__':
    sys.exit(main(*sys.argv[1:2]))
