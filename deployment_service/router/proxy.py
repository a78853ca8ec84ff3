# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" The edge router.

Serves ``<deployment id>.<base domain>/<path>`` by proxying the request to
``<artifact base url>/<deployment id>/<path>`` and streaming the answer back.
"""

import logging
import mimetypes
import posixpath
from urllib.parse import quote

from flask import Flask, Response, request, stream_with_context
import requests

from deployment_service.common.errors import ProxyError, ProxyTimeout, json_error

log = logging.getLogger(__name__)

INDEX_DOCUMENT = "index.html"
CHUNK_SIZE = 64 * 1024

# Not forwarded in either direction
HOP_BY_HOP_HEADERS = frozenset((
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
))
# The response body is re-streamed, so its framing is recomputed
STRIPPED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | frozenset(("content-encoding", "content-length"))


def deployment_id_from_host(host):
    """ Returns the leftmost label of a Host header, lowercased. """
    hostname = (host or "").strip().split(":", 1)[0].lower()
    return hostname.split(".", 1)[0]


def resolve(conf, host, path, query=""):
    """
    Returns (deployment id, target URL) for a request.

    path is percent-encoded. A request for "/" serves the index document,
    deeper paths are passed through as they are.
    """
    deployment_id = deployment_id_from_host(host)
    if not deployment_id:
        raise ValueError("Cannot derive a deployment id from host %r" % (host,))
    if not path.startswith("/"):
        path = "/" + path
    if path == "/":
        path += INDEX_DOCUMENT
    target = "%s/%s%s" % (conf.artifact_base_url, deployment_id, path)
    if query:
        target += "?" + query
    return deployment_id, target


def forwarded_headers(headers):
    """ Request headers passed on to the store. """
    return {k: v for k, v in headers.items()
            if k.lower() not in HOP_BY_HOP_HEADERS and k.lower() != "host"}


def response_headers(upstream, path, powered_by):
    """ Store response headers passed back to the client. """
    headers = [(k, v) for k, v in upstream.headers.items()
               if k.lower() not in STRIPPED_RESPONSE_HEADERS]
    if "content-type" not in (k.lower() for k, _ in headers):
        content_type, _ = mimetypes.guess_type(posixpath.basename(path))
        if content_type:
            headers.append(("Content-Type", content_type))
    if powered_by:
        headers.append(("X-Powered-By", powered_by))
    return headers


class Proxy(object):
    """ Forwards requests to the artifact store over a shared session. """

    def __init__(self, conf, session=None):
        self.conf = conf
        self.session = session or requests.Session()

    def __repr__(self):
        return "<Proxy %s>" % self.conf.artifact_base_url

    def forward(self, method, target, headers, body=None):
        try:
            return self.session.request(
                method, target, headers=headers, data=body, stream=True,
                allow_redirects=False, timeout=self.conf.net_timeout)
        except requests.exceptions.Timeout as e:
            raise ProxyTimeout("Timed out waiting for %s: %s" % (target, e))
        except requests.exceptions.RequestException as e:
            raise ProxyError("Failed to reach %s: %s" % (target, e))


def create_app(conf, session=None):
    """
    Returns the edge router Flask application.

    :param conf: Config instance
    :param session: requests.Session used for every upstream request
    """
    app = Flask("deployment_service.router")
    app.config["DEBUG"] = conf.debug
    proxy = Proxy(conf, session)
    app.extensions["deployment_service.proxy"] = proxy

    methods = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

    @app.route("/", defaults={"path": ""}, methods=methods)
    @app.route("/<path:path>", methods=methods)
    def serve(path):
        try:
            deployment_id, target = resolve(
                conf, request.host, "/" + quote(path, safe="/"),
                request.query_string.decode("latin-1"))
        except ValueError as e:
            return json_error(400, "Bad Request", str(e))

        upstream = proxy.forward(
            request.method, target, forwarded_headers(request.headers),
            request.get_data() or None)
        log.debug("[%s] %s %s -> %s %d", deployment_id, request.method, request.path, target,
                  upstream.status_code)

        def generate():
            try:
                for chunk in upstream.iter_content(CHUNK_SIZE):
                    yield chunk
            finally:
                upstream.close()

        return Response(
            stream_with_context(generate()),
            status=upstream.status_code,
            headers=response_headers(upstream, target.split("?", 1)[0], conf.router_powered_by))

    @app.errorhandler(ProxyTimeout)
    def proxytimeout_error(e):
        """Flask error handler for ProxyTimeout exceptions"""
        log.warning(str(e))
        return json_error(504, "Gateway Timeout", str(e))

    @app.errorhandler(ProxyError)
    def proxyerror_error(e):
        """Flask error handler for ProxyError exceptions"""
        log.warning(str(e))
        return json_error(502, "Bad Gateway", str(e))

    return app
