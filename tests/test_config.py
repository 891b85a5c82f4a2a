"""Tests for config.json loading and validation."""

import json

import pytest

from config import ConfigurationError, JukeboxConfig, load_config


class TestFromDict:
    def test_defaults(self):
        config = JukeboxConfig.from_dict({"hostIp": "192.168.1.10"})
        assert config.port == 3000
        assert config.trust_proxy is False
        assert config.require_login is False
        assert config.enrichment_timeout == 5.0
        assert config.advertise is True

    @pytest.mark.parametrize("data", [{}, {"hostIp": ""}, {"hostIp": "   "}, {"hostIp": 42}])
    def test_missing_host_is_fatal(self, data):
        with pytest.raises(ConfigurationError, match="hostIp"):
            JukeboxConfig.from_dict(data)

    @pytest.mark.parametrize("port", [0, 70000, "3000", True])
    def test_bad_port(self, port):
        with pytest.raises(ConfigurationError, match="port"):
            JukeboxConfig.from_dict({"hostIp": "h", "port": port})

    def test_login_requires_credentials(self):
        with pytest.raises(ConfigurationError, match="requireLogin"):
            JukeboxConfig.from_dict({"hostIp": "h", "requireLogin": True, "username": "u"})

    def test_trust_proxy_must_be_true_literal(self):
        config = JukeboxConfig.from_dict({"hostIp": "h", "trustProxy": "yes"})
        assert config.trust_proxy is False

    def test_library_url_trailing_slash(self):
        config = JukeboxConfig.from_dict({"hostIp": "h", "libraryUrl": "http://jf:8096/"})
        assert config.library_url == "http://jf:8096"

    def test_generated_secret_is_stable(self):
        config = JukeboxConfig.from_dict({"hostIp": "h"})
        assert config.secret_key() == config.secret_key()

    def test_not_an_object(self):
        with pytest.raises(ConfigurationError):
            JukeboxConfig.from_dict(["hostIp"])

    @pytest.mark.parametrize(
        "key,value",
        [
            ("libraryUrl", 5),
            ("libraryToken", ["tok"]),
            ("libraryUserId", 12),
            ("sessionSecret", 1234),
            ("username", {"name": "u"}),
            ("passwordHash", True),
        ],
    )
    def test_string_options_type_checked(self, key, value):
        with pytest.raises(ConfigurationError, match=key):
            JukeboxConfig.from_dict({"hostIp": "127.0.0.1", key: value})

    def test_wrongly_typed_login_credentials(self):
        with pytest.raises(ConfigurationError, match="passwordHash"):
            JukeboxConfig.from_dict(
                {"hostIp": "h", "requireLogin": True, "username": "u", "passwordHash": 7}
            )

    def test_library_user_id(self):
        config = JukeboxConfig.from_dict({"hostIp": "h", "libraryUserId": "user-1"})
        assert config.library_user_id == "user-1"


class TestLoadConfig:
    def test_reads_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"hostIp": "10.0.0.5", "port": 8080}))
        config = load_config(str(path))
        assert config.host_ip == "10.0.0.5"
        assert config.port == 8080

    def test_env_var_path(self, tmp_path, monkeypatch):
        path = tmp_path / "other.json"
        path.write_text(json.dumps({"hostIp": "10.0.0.6"}))
        monkeypatch.setenv("JUKEBOX_CONFIG", str(path))
        assert load_config().host_ip == "10.0.0.6"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Could not find"):
            load_config(str(tmp_path / "nope.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="Could not read"):
            load_config(str(path))
