"""Tests for the subscription HTTP endpoints."""

import base64
import json
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from services import SubscriptionNotFound, SubscriptionPayload, Traffic
from subscription import ServerConfig, create_app
from subscription.headers import encode_title
from subscription.router import route_path


LINKS = [
    "vless://id@sub.example.com:443?type=tcp#Frankfurt",
    "trojan://pw@sub.example.com:443#Paris",
]
RAW_BODY = "".join(link + "\n" for link in LINKS)


def make_config(**overrides) -> ServerConfig:
    values = dict(
        links_path="/sub/",
        json_path="/json/",
        json_enabled=True,
        encrypt=False,
        show_info=False,
        remark_model="-ieo",
        update_interval="12",
        json_fragment="",
        json_noise="",
        json_mux="",
        json_rules="",
        title="",
        custom_headers="[]",
        custom_html="",
    )
    values.update(overrides)
    return ServerConfig(**values)


@pytest.fixture
def sub_service():
    service = Mock()
    service.get_subs.return_value = SubscriptionPayload(
        links=list(LINKS),
        last_online=0,
        traffic=Traffic(up=100, down=200, total=1000, expiry_time=1700000000000),
    )
    return service


@pytest.fixture
def sub_json_service():
    service = Mock()
    service.get_json.return_value = ('[{"remarks": "Frankfurt"}]', "upload=1; download=2; total=3; expire=4")
    return service


def make_client(sub_service, sub_json_service, **overrides) -> TestClient:
    app = create_app(make_config(**overrides), sub_service, sub_json_service)
    return TestClient(app)


class TestRoutePath:
    @pytest.mark.parametrize("prefix,expected", [
        ("/", "/{subid}"),
        ("/sub/", "/sub/{subid}"),
        ("/sub", "/sub/{subid}"),
        ("sub/", "/sub/{subid}"),
        ("/a/b/", "/a/b/{subid}"),
    ])
    def test_route_path(self, prefix, expected):
        assert route_path(prefix) == expected


class TestLinkDelivery:
    """Tests for GET {linksPath}/{subid}."""

    def test_raw_body(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service)

        response = client.get("/sub/abc")

        assert response.status_code == 200
        assert response.text == RAW_BODY
        assert response.headers["content-type"].startswith("text/plain")
        sub_service.get_subs.assert_called_once_with("abc", "testserver")

    def test_encrypted_body_round_trips(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service, encrypt=True)

        response = client.get("/sub/abc")

        assert response.status_code == 200
        assert base64.b64decode(response.text).decode("utf-8") == RAW_BODY

    def test_usage_and_interval_headers(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service, update_interval="6")

        response = client.get("/sub/abc")

        assert response.headers["subscription-userinfo"] == "upload=100; download=200; total=1000; expire=1700000000"
        assert response.headers["profile-update-interval"] == "6"
        assert "profile-title" not in response.headers

    def test_profile_title(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service, title="My VPN")

        response = client.get("/sub/abc")

        title = response.headers["profile-title"]
        assert title.startswith("base64:")
        assert base64.b64decode(title[len("base64:"):]).decode("utf-8") == "My VPN"

    def test_custom_headers_last_wins(self, sub_service, sub_json_service):
        custom = '[{"name":"X-Test","value":"1"},{"name":"X-Test","value":"2"}]'
        client = make_client(sub_service, sub_json_service, custom_headers=custom)

        response = client.get("/sub/abc")

        assert response.headers.get_list("x-test") == ["2"]

    def test_malformed_custom_headers_ignored(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service, custom_headers="{not json")

        response = client.get("/sub/abc")

        assert response.status_code == 200
        assert response.text == RAW_BODY

    def test_forwarded_host_passed_to_service(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service)

        client.get("/sub/abc", headers={"X-Forwarded-Host": "public.example.com:8443"})

        sub_service.get_subs.assert_called_once_with("abc", "public.example.com")

    def test_root_links_path(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service, links_path="/")

        assert client.get("/abc").status_code == 200
        assert client.get("/json/abc").status_code == 200

    def test_only_final_segment_matches(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service)

        assert client.get("/sub/abc/extra").status_code == 404
        assert client.get("/sub/").status_code == 404
        assert client.get("/other/abc").status_code == 404


class TestLinkDeliveryErrors:
    """Failed or empty lookups answer 400 Error! in every mode."""

    @pytest.mark.parametrize("overrides,params,headers", [
        ({}, {}, {}),
        ({"encrypt": True}, {}, {}),
        ({}, {"html": "1"}, {}),
        ({}, {}, {"Accept": "text/html"}),
    ])
    def test_empty_links(self, sub_service, sub_json_service, overrides, params, headers):
        sub_service.get_subs.return_value = SubscriptionPayload(links=[])
        client = make_client(sub_service, sub_json_service, **overrides)

        response = client.get("/sub/abc", params=params, headers=headers)

        assert response.status_code == 400
        assert response.text == "Error!"

    @pytest.mark.parametrize("error", [
        SubscriptionNotFound("missing"),
        RuntimeError("database is locked"),
    ])
    def test_service_error(self, sub_service, sub_json_service, error):
        sub_service.get_subs.side_effect = error
        client = make_client(sub_service, sub_json_service, encrypt=True)

        response = client.get("/sub/abc")

        assert response.status_code == 400
        assert response.text == "Error!"
        assert "subscription-userinfo" not in response.headers


class TestHtmlPage:
    """Tests for content negotiation and the info page."""

    @pytest.mark.parametrize("params,headers", [
        ({}, {"Accept": "Text/HTML,application/xhtml+xml"}),
        ({"html": "1"}, {}),
        ({"view": "HTML"}, {}),
    ])
    def test_html_signals(self, sub_service, sub_json_service, params, headers):
        client = make_client(sub_service, sub_json_service)

        response = client.get("/sub/abc", params=params, headers=headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "<h1>Subscription abc</h1>" in response.text
        assert "subscription-userinfo" not in response.headers

    def test_html_wins_over_view_param(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service)

        response = client.get("/sub/abc", params={"view": "raw"}, headers={"Accept": "text/html"})

        assert response.headers["content-type"].startswith("text/html")

    def test_fallback_links_subscription_url(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service)

        response = client.get("/sub/abc?html=1", headers={"X-Forwarded-Proto": "https", "Host": "h.example.com:443"})

        assert '<a href="https://h.example.com/sub/abc">' in response.text

    def test_custom_template(self, sub_service, sub_json_service):
        template = "{{ sid }}|{{ base_path }}|{{ sub_url }}|{{ sub_json_url }}|{{ remained }}"
        client = make_client(sub_service, sub_json_service, custom_html=template)

        response = client.get("/sub/abc?html=1", headers={"Host": "h.example.com:2096"})

        assert response.text == (
            "abc|/sub/abc/|http://h.example.com:2096/sub/abc|"
            "http://h.example.com:2096/json/abc|700.00B"
        )

    def test_custom_template_without_json(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service, json_enabled=False, custom_html="[{{ sub_json_url }}]")

        assert client.get("/sub/abc?html=1").text == "[]"

    def test_root_base_path(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service, links_path="/", custom_html="{{ base_path }}")

        assert client.get("/abc?html=1").text == "/abc/"

    def test_broken_template_falls_back(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service, custom_html="{% for %}")

        response = client.get("/sub/abc?html=1")

        assert response.status_code == 200
        assert "<h1>Subscription abc</h1>" in response.text


class TestJsonDelivery:
    """Tests for GET {jsonPath}/{subid}."""

    def test_json_body_and_headers(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service, title="My VPN")

        response = client.get("/json/abc")

        assert response.status_code == 200
        assert json.loads(response.text) == [{"remarks": "Frankfurt"}]
        assert response.headers["subscription-userinfo"] == "upload=1; download=2; total=3; expire=4"
        assert response.headers["profile-update-interval"] == "12"
        assert response.headers["profile-title"] == encode_title("My VPN")
        sub_json_service.get_json.assert_called_once_with("abc", "testserver")

    def test_disabled_json_is_not_routed(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service, json_enabled=False)

        assert client.get("/json/abc").status_code == 404
        sub_json_service.get_json.assert_not_called()

    def test_empty_json_is_error(self, sub_service, sub_json_service):
        sub_json_service.get_json.return_value = ("", "upload=0; download=0; total=0; expire=0")
        client = make_client(sub_service, sub_json_service)

        response = client.get("/json/abc")

        assert response.status_code == 400
        assert response.text == "Error!"

    def test_json_service_error(self, sub_service, sub_json_service):
        sub_json_service.get_json.side_effect = SubscriptionNotFound("missing")
        client = make_client(sub_service, sub_json_service)

        response = client.get("/json/abc")

        assert response.status_code == 400
        assert response.text == "Error!"


class TestDomainValidation:
    def test_matching_domain(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service, domain="sub.example.com")

        response = client.get("/sub/abc", headers={"Host": "sub.example.com:2096"})

        assert response.status_code == 200

    def test_other_domain_forbidden(self, sub_service, sub_json_service):
        client = make_client(sub_service, sub_json_service, domain="sub.example.com")

        response = client.get("/sub/abc", headers={"Host": "evil.example.com"})

        assert response.status_code == 403
        sub_service.get_subs.assert_not_called()

