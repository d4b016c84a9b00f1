"""Tests for the service catalog and descriptor models."""

import json

import pytest

from conduit.connectors.builtin import BUILTIN_SERVICES
from conduit.connectors.catalog import ServiceCatalog
from conduit.exceptions import ConfigurationError, DuplicateService, ServiceNotFound
from conduit.models.service import AuthProvider, DataTransformerKind, Service

from conftest import WEATHER_SERVICE


def _descriptor(service_id, **overrides):
    data = {
        "id": service_id,
        "name": service_id.title(),
        "baseUrl": f"https://{service_id}.test/",
        "authProvider": "none",
        "endpoints": {"ping": {"path": "/ping"}},
    }
    data.update(overrides)
    return data


class TestServiceCatalog:
    """Registration, lookup and ordering."""

    def test_list_preserves_registration_order(self):
        catalog = ServiceCatalog()
        for service_id in ("zeta", "alpha", "mid"):
            catalog.register(_descriptor(service_id))

        assert [service.id for service in catalog.list()] == ["zeta", "alpha", "mid"]

    def test_get_returns_registered_service(self):
        catalog = ServiceCatalog()
        catalog.register(WEATHER_SERVICE)

        service = catalog.get("weather")
        assert service.auth_provider == AuthProvider.API_KEY
        assert service.data_transformer == DataTransformerKind.JSON
        assert "current" in service.endpoints

    def test_get_unknown_service(self):
        catalog = ServiceCatalog()
        with pytest.raises(ServiceNotFound) as exc_info:
            catalog.get("missing")
        assert exc_info.value.kind == "ServiceNotFound"
        assert exc_info.value.service_id == "missing"

    def test_duplicate_registration_fails(self):
        catalog = ServiceCatalog()
        catalog.register(_descriptor("dup"))
        with pytest.raises(DuplicateService):
            catalog.register(_descriptor("dup", name="Other"))
        assert len(catalog) == 1
        assert catalog.get("dup").name == "Dup"

    def test_malformed_descriptor(self):
        catalog = ServiceCatalog()
        with pytest.raises(ConfigurationError):
            catalog.register({"id": "broken", "name": "Broken", "authProvider": "none"})
        assert "broken" not in catalog

    def test_unknown_auth_provider_rejected(self):
        with pytest.raises(ConfigurationError):
            ServiceCatalog().register(_descriptor("svc", authProvider="kerberos"))

    def test_custom_provider_requires_handler(self):
        with pytest.raises(ConfigurationError):
            ServiceCatalog().register(_descriptor("svc", authProvider="custom"))

    def test_load_file_with_list(self, tmp_path):
        path = tmp_path / "services.json"
        path.write_text(json.dumps([_descriptor("one"), _descriptor("two")]))

        catalog = ServiceCatalog()
        loaded = catalog.load_file(path)

        assert [service.id for service in loaded] == ["one", "two"]
        assert len(catalog) == 2

    def test_load_file_with_services_key(self, tmp_path):
        path = tmp_path / "services.json"
        path.write_text(json.dumps({"services": [_descriptor("one")]}))

        catalog = ServiceCatalog()
        catalog.load_file(path)
        assert "one" in catalog

    def test_load_file_invalid_json(self, tmp_path):
        path = tmp_path / "services.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError):
            ServiceCatalog().load_file(path)

    def test_builtin_services_register(self):
        catalog = ServiceCatalog()
        catalog.register_many(BUILTIN_SERVICES)

        assert [service.id for service in catalog.list()] == [
            "google-drive", "github", "dropbox", "slack", "trello",
        ]


class TestServiceDescriptor:
    """Descriptor validation and normalization."""

    def test_base_url_trailing_slash_stripped(self):
        service = Service.model_validate(_descriptor("svc"))
        assert service.base_url == "https://svc.test"

    def test_base_url_requires_http_scheme(self):
        with pytest.raises(ValueError):
            Service.model_validate(_descriptor("svc", baseUrl="ftp://svc.test"))

    def test_method_normalized_and_validated(self):
        service = Service.model_validate(_descriptor("svc", endpoints={"a": {"method": "post", "path": "/a"}}))
        assert service.endpoints["a"].method == "POST"

        with pytest.raises(ValueError):
            Service.model_validate(_descriptor("svc", endpoints={"a": {"method": "FETCH", "path": "/a"}}))

    def test_path_must_be_absolute(self):
        with pytest.raises(ValueError):
            Service.model_validate(_descriptor("svc", endpoints={"a": {"path": "a/b"}}))

    def test_default_params_coerced_to_strings(self):
        catalog = ServiceCatalog()
        catalog.register_many(BUILTIN_SERVICES)
        list_files = catalog.get("google-drive").endpoints["listFiles"]
        assert list_files.default_params["pageSize"] == "10"

    def test_placeholders_in_order(self):
        catalog = ServiceCatalog()
        catalog.register_many(BUILTIN_SERVICES)
        endpoint = catalog.get("github").endpoints["getRepository"]
        assert endpoint.placeholders() == ["owner", "repo"]

    def test_service_is_immutable(self):
        service = Service.model_validate(_descriptor("svc"))
        with pytest.raises(Exception):
            service.name = "changed"

    def test_public_dict_uses_camel_case(self):
        data = Service.model_validate(WEATHER_SERVICE).to_public_dict()
        assert data["baseUrl"] == "https://api.weather.test"
        assert data["authProvider"] == "api-key"
        assert data["endpoints"]["current"]["defaultParams"] == {"units": "metric"}
