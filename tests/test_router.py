# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import json

import mock
import pytest
import requests
from requests.structures import CaseInsensitiveDict

from deployment_service.router import create_app, resolve
from deployment_service.router.proxy import deployment_id_from_host, forwarded_headers

from tests import make_conf

STORE = "http://store.example.local/__outputs"


def upstream_response(status_code=200, body=b"", headers=None):
    response = mock.MagicMock()
    response.status_code = status_code
    response.headers = CaseInsensitiveDict(headers or {})
    response.iter_content.return_value = iter([body])
    return response


class TestResolve:

    def setup_method(self, test_method):
        self.conf = make_conf(store_base_url=STORE)

    @pytest.mark.parametrize("host,expected", [
        ("foo.example.local", "foo"),
        ("Foo.Example.Local:8000", "foo"),
        ("quiet-amber-otter.sites.example.com", "quiet-amber-otter"),
        ("localhost", "localhost"),
    ])
    def test_deployment_id_from_host(self, host, expected):
        assert deployment_id_from_host(host) == expected

    def test_root_serves_index(self):
        assert resolve(self.conf, "foo.example.local", "/") == \
            ("foo", STORE + "/foo/index.html")

    def test_path_passed_through(self):
        assert resolve(self.conf, "foo.example.local", "/assets/app.js") == \
            ("foo", STORE + "/foo/assets/app.js")

    def test_no_nested_index(self):
        assert resolve(self.conf, "foo.example.local", "/docs/") == \
            ("foo", STORE + "/foo/docs/")

    def test_query_kept(self):
        _, target = resolve(self.conf, "foo.example.local", "/app.js", "v=3")
        assert target == STORE + "/foo/app.js?v=3"

    def test_s3_base_url(self):
        conf = make_conf(store_base_url="", s3_bucket="sites")
        _, target = resolve(conf, "foo.example.local", "/")
        assert target == "https://sites.s3.amazonaws.com/__outputs/foo/index.html"

    @pytest.mark.parametrize("host", ["", ":8000"])
    def test_no_deployment_id(self, host):
        with pytest.raises(ValueError):
            resolve(self.conf, host, "/")

    def test_forwarded_headers(self):
        headers = forwarded_headers({
            "Host": "foo.example.local",
            "Connection": "keep-alive",
            "Accept": "text/html",
            "If-None-Match": '"abc"',
        })
        assert headers == {"Accept": "text/html", "If-None-Match": '"abc"'}


class TestRouter:

    def setup_method(self, test_method):
        self.conf = make_conf(store_base_url=STORE)
        self.session = mock.MagicMock()
        self.app = create_app(self.conf, session=self.session)
        self.client = self.app.test_client()

    def get(self, path, host="foo.example.local", **kwargs):
        return self.client.get(path, base_url="http://%s" % host, **kwargs)

    def test_index(self):
        upstream = upstream_response(200, b"<h1>hello</h1>", {
            "Content-Type": "text/html",
            "Content-Length": "14",
            "ETag": '"abc"',
            "Connection": "keep-alive",
        })
        self.session.request.return_value = upstream

        rv = self.get("/")
        assert rv.status_code == 200
        assert rv.data == b"<h1>hello</h1>"
        assert rv.headers["Content-Type"] == "text/html"
        assert rv.headers["ETag"] == '"abc"'
        assert rv.headers["X-Powered-By"] == "deployment-service"
        assert "Connection" not in rv.headers

        args, kwargs = self.session.request.call_args
        assert args == ("GET", STORE + "/foo/index.html")
        assert "Host" not in kwargs["headers"]
        assert kwargs["stream"] is True
        assert kwargs["timeout"] == self.conf.net_timeout
        upstream.close.assert_called_once()

    def test_content_type_inferred(self):
        self.session.request.return_value = upstream_response(200, b"console.log(1)")
        rv = self.get("/app.js")
        assert rv.headers["Content-Type"] in ("text/javascript", "application/javascript")
        args, _ = self.session.request.call_args
        assert args[1] == STORE + "/foo/app.js"

    def test_html_content_type_inferred(self):
        self.session.request.return_value = upstream_response(200, b"<p/>")
        rv = self.get("/about.html")
        assert rv.headers["Content-Type"] == "text/html"

    def test_not_found_passed_through(self):
        self.session.request.return_value = upstream_response(
            404, b"<Error><Code>NoSuchKey</Code></Error>", {"Content-Type": "application/xml"})
        rv = self.get("/", host="unknown.example.local")
        assert rv.status_code == 404
        assert rv.data == b"<Error><Code>NoSuchKey</Code></Error>"
        assert rv.headers["Content-Type"] == "application/xml"
        args, _ = self.session.request.call_args
        assert args[1] == STORE + "/unknown/index.html"

    @pytest.mark.parametrize("path,key", [
        ("/c%23sharp.html", "c%23sharp.html"),
        ("/what%3F.html", "what%3F.html"),
        ("/100%25.html", "100%25.html"),
        ("/my%20page.html", "my%20page.html"),
    ])
    def test_reserved_characters_kept_in_key(self, path, key):
        self.session.request.return_value = upstream_response(200, b"<p/>")
        rv = self.get(path)
        assert rv.status_code == 200
        assert rv.headers["Content-Type"] == "text/html"
        args, _ = self.session.request.call_args
        assert args[1] == STORE + "/foo/" + key

    def test_method_and_body_forwarded(self):
        self.session.request.return_value = upstream_response(405, b"")
        rv = self.client.post("/form", base_url="http://foo.example.local", data=b"a=1",
                              content_type="application/x-www-form-urlencoded")
        assert rv.status_code == 405
        args, kwargs = self.session.request.call_args
        assert args == ("POST", STORE + "/foo/form")
        assert kwargs["data"] == b"a=1"

    def test_store_unreachable(self):
        self.session.request.side_effect = requests.exceptions.ConnectionError("refused")
        rv = self.get("/")
        assert rv.status_code == 502
        assert json.loads(rv.data)["error"] == "Bad Gateway"

    def test_store_timeout(self):
        self.session.request.side_effect = requests.exceptions.ReadTimeout("too slow")
        rv = self.get("/")
        assert rv.status_code == 504
        assert json.loads(rv.data)["error"] == "Gateway Timeout"

    def test_session_shared(self):
        self.session.request.return_value = upstream_response(200, b"x")
        self.get("/")
        self.session.request.return_value = upstream_response(200, b"y")
        self.get("/b.txt", host="bar.example.local")
        assert self.session.request.call_count == 2
        assert self.app.extensions["deployment_service.proxy"].session is self.session
