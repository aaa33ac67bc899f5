# web_server.py
from threading import Thread

from flask import Flask, make_response, request
from waitress.server import create_server

import config


def create_app(descriptor_xml):
    """Builds the Flask app that serves one device description."""
    app = Flask(__name__)

    @app.before_request
    def log_request():
        print(f"HTTP: {request.method} {request.full_path.rstrip('?')} from {request.remote_addr}")

    @app.route(config.ROOT_DESC_PATH)
    def root_desc():
        resp = make_response(descriptor_xml)
        resp.headers['Content-Type'] = 'text/xml; charset="utf-8"'
        resp.headers['Content-Length'] = str(len(descriptor_xml))
        return resp

    return app


# --- Server Runner ---
class DescriptorServer:
    """Serves the device description on an OS-assigned port.

    The listening socket is bound in the constructor so the port is known
    before the first announcement goes out. A bind failure raises OSError.
    """

    def __init__(self, descriptor_xml, host='0.0.0.0', port=0, threads=4):
        self.app = create_app(descriptor_xml)
        self._server = create_server(self.app, host=host, port=port, threads=threads)
        self._closing = False
        self.thread = None

    @property
    def host(self):
        return self._server.socket.getsockname()[0]

    @property
    def port(self):
        # Asked of the listening socket on every call.
        return self._server.socket.getsockname()[1]

    def serve(self, on_failure=None):
        try:
            self._server.run()
        except Exception as e:
            if self._closing:
                return
            print(f"!!! FATAL HTTP Error: Descriptor server stopped. Error: {e}")
            if on_failure:
                on_failure(e)
            else:
                raise

    def start(self, on_failure=None):
        self.thread = Thread(target=self.serve, args=(on_failure,), daemon=True)
        self.thread.start()
        return self.thread

    def close(self, timeout=2.0):
        self._closing = True
        self._server.close()
        self._server.task_dispatcher.shutdown()
        if self.thread:
            self.thread.join(timeout)
