# dms_main.py
import logging
import signal
import sys
from datetime import datetime
from threading import Event

import config
import device_description
import network_services
import web_server


class TimeOfDayFormatter(logging.Formatter):
    """Prefixes records with the wall-clock time down to microseconds."""

    def formatTime(self, record, datefmt=None):
        return datetime.fromtimestamp(record.created).strftime(datefmt or '%H:%M:%S.%f')


def setup_ssdp_logger(path):
    """Returns the logger that records every outgoing NOTIFY to its own file."""
    logger = logging.getLogger('ssdp')
    logger.setLevel(logging.INFO)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    handler = logging.FileHandler(path, mode='a', encoding='utf-8')
    handler.setFormatter(TimeOfDayFormatter('%(asctime)s %(message)s'))
    logger.addHandler(handler)
    return logger


def initial_setup(identity_provider=device_description.make_device_uuid,
                  environment_provider=device_description.get_environment_facts):
    """Creates the device identity and its description. Errors here are fatal."""
    device_uuid = identity_provider()
    hostname, username = environment_provider()
    root_desc_xml = device_description.build_descriptor(device_uuid, hostname, username)
    print(root_desc_xml.decode('utf-8'))
    return device_uuid, root_desc_xml


def main(settings_path=config.SETTINGS_FILE):
    print("--- DMS Starting ---")
    settings = config.load_settings(settings_path)

    try:
        device_uuid, root_desc_xml = initial_setup()
        server = web_server.DescriptorServer(root_desc_xml, threads=settings['http_threads'])
        ssdp_logger = setup_ssdp_logger(settings['ssdp_log_file'])
    except (device_description.DescriptorError, OSError) as e:
        print(f"!!! FATAL: Startup failed. Error: {e}")
        return 1
    print(f"HTTP server on {server.host}:{server.port}")

    shutdown = Event()
    failure = []

    def on_http_failure(error):
        failure.append(error)
        shutdown.set()

    def on_signal(signum, frame):
        print(f"Received signal {signum}, shutting down...")
        shutdown.set()

    signal.signal(signal.SIGTERM, on_signal)

    server.start(on_failure=on_http_failure)
    discovery = network_services.DiscoveryService(
        device_uuid, lambda: server.port, ssdp_logger, settings=settings,
    )
    discovery.start()

    try:
        # A timed wait keeps Ctrl+C responsive.
        while not shutdown.wait(1.0):
            pass
    except KeyboardInterrupt:
        print("Shutdown initiated...")
    finally:
        discovery.stop()
        server.close()
        for handler in ssdp_logger.handlers:
            handler.close()
    print("DMS stopped.")
    return 1 if failure else 0


if __name__ == '__main__':
    sys.exit(main())
