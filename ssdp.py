# ssdp.py
import config
from device_description import SERVICES


def announcement_targets(device_uuid, services=SERVICES):
    """Every NT value the device announces, in the order they are sent."""
    return ([config.ROOT_DEVICE_TARGET, config.ROOT_DEVICE_TYPE]
            + [s.service_type for s in services]
            + [device_uuid])


def usn_from_target(device_uuid, target):
    if target == device_uuid:
        return target
    return f"{device_uuid}::{target}"


def location_url(location_host, server_port):
    return f"http://{location_host}:{server_port}{config.ROOT_DESC_PATH}"


def make_notify_message(location_host, target, nts, server_port, device_uuid):
    """Formats one SSDP NOTIFY datagram. Pure: same inputs, same bytes."""
    lines = (
        ("HOST", f"{config.SSDP_ADDR}:{config.SSDP_PORT}"),
        ("CACHE-CONTROL", config.CACHE_CONTROL),
        ("LOCATION", location_url(location_host, server_port)),
        ("NT", target),
        ("NTS", nts),
        ("SERVER", config.SERVER_FIELD),
        ("USN", usn_from_target(device_uuid, target)),
    )
    message = 'NOTIFY * HTTP/1.1\r\n'
    message += ''.join(f'{name}: {value}\r\n' for name, value in lines)
    message += '\r\n'
    return message.encode('utf-8')
