# device_description.py
import socket
import uuid
import xml.etree.ElementTree as ET
from collections import namedtuple

import psutil

import config

Icon = namedtuple('Icon', ['mimetype', 'width', 'height', 'depth', 'url'])
Service = namedtuple('Service', ['service_type', 'service_id', 'scpd_url', 'control_url', 'event_sub_url'])

SERVICES = (
    Service(
        service_type="urn:schemas-upnp-org:service:ContentDirectory:1",
        service_id="urn:upnp-org:serviceId:ContentDirectory",
        scpd_url="/scpd/ContentDirectory.xml",
        control_url="/ctl/ContentDirectory",
        event_sub_url="/evt/ContentDirectory",
    ),
)


class DescriptorError(Exception):
    """The device description or the facts it is built from could not be produced."""


def make_device_uuid():
    """Returns a fresh random device identity, e.g. 'uuid:1b4e28ba-2fa1-...'."""
    return f"uuid:{uuid.uuid4()}"


def get_environment_facts():
    """Returns (hostname, username) for the machine and user we are running as."""
    try:
        hostname = socket.gethostname()
    except OSError as e:
        raise DescriptorError(f"Could not resolve hostname: {e}") from e
    try:
        username = psutil.Process().username()
    except (psutil.Error, KeyError) as e:
        raise DescriptorError(f"Could not resolve current user: {e}") from e
    if not hostname or not username:
        raise DescriptorError("Hostname and user name must not be empty.")
    return hostname, username


def friendly_name(hostname, username, model_name=config.ROOT_DEVICE_MODEL_NAME):
    return f"{model_name}: {username} on {hostname}"


def _text(parent, tag, value):
    el = ET.SubElement(parent, tag)
    el.text = value
    return el


def build_descriptor(device_uuid, hostname, username, services=SERVICES, icons=()):
    """Builds the root device description served at /rootDesc.xml.

    Returns UTF-8 bytes: the fixed XML declaration on its own line followed by
    the <root> document indented by two spaces.
    """
    root = ET.Element('root', {'xmlns': config.DEVICE_NAMESPACE, 'configId': str(config.CONFIG_ID)})
    spec_version = ET.SubElement(root, 'specVersion')
    _text(spec_version, 'major', str(config.SPEC_VERSION[0]))
    _text(spec_version, 'minor', str(config.SPEC_VERSION[1]))

    device = ET.SubElement(root, 'device')
    _text(device, 'deviceType', config.ROOT_DEVICE_TYPE)
    _text(device, 'friendlyName', friendly_name(hostname, username))
    _text(device, 'manufacturer', config.ROOT_DEVICE_MANUFACTURER)
    _text(device, 'modelName', config.ROOT_DEVICE_MODEL_NAME)
    _text(device, 'UDN', device_uuid)

    # An empty iconList is not allowed, so it only appears with icons in it.
    if icons:
        icon_list = ET.SubElement(device, 'iconList')
        for icon in icons:
            icon_el = ET.SubElement(icon_list, 'icon')
            _text(icon_el, 'mimetype', icon.mimetype)
            _text(icon_el, 'width', str(icon.width))
            _text(icon_el, 'height', str(icon.height))
            _text(icon_el, 'depth', str(icon.depth))
            _text(icon_el, 'url', icon.url)

    service_list = ET.SubElement(device, 'serviceList')
    for service in services:
        service_el = ET.SubElement(service_list, 'service')
        _text(service_el, 'serviceType', service.service_type)
        _text(service_el, 'serviceId', service.service_id)
        _text(service_el, 'SCPDURL', service.scpd_url)
        _text(service_el, 'controlURL', service.control_url)
        _text(service_el, 'eventSubURL', service.event_sub_url)

    ET.indent(root, space="  ")
    try:
        body = ET.tostring(root, encoding='unicode')
    except (TypeError, ValueError) as e:
        raise DescriptorError(f"Could not serialize device description: {e}") from e
    return f"{config.XML_DECLARATION}\n{body}".encode('utf-8')
