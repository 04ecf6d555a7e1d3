"""
Connector Configuration Tests.
"""

import pytest

from powerbi_connector import ConfigurationError, PowerBIConfig


class TestValidation:

    def test_valid(self):
        PowerBIConfig(client_id="a", client_secret="b", tenant_id="c").validate()

    @pytest.mark.parametrize("missing", ["client_id", "client_secret", "tenant_id"])
    def test_missing_credential(self, missing):
        values = {"client_id": "a", "client_secret": "b", "tenant_id": "c"}
        values[missing] = ""

        with pytest.raises(ConfigurationError) as exc_info:
            PowerBIConfig(**values).validate()

        assert exc_info.value.config_key == missing

    def test_non_positive_poll_interval(self):
        config = PowerBIConfig(
            client_id="a",
            client_secret="b",
            tenant_id="c",
            default_poll_interval_seconds=0,
        )
        with pytest.raises(ConfigurationError, match="default_poll_interval_seconds"):
            config.validate()

    def test_negative_min_poll_interval(self):
        config = PowerBIConfig(
            client_id="a",
            client_secret="b",
            tenant_id="c",
            min_poll_interval_seconds=-1,
        )
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()
        assert exc_info.value.config_key == "min_poll_interval_seconds"

    def test_derived_urls(self):
        config = PowerBIConfig(tenant_id="contoso", authority_base_url="https://login.example.com/")
        assert config.authority == "https://login.example.com/contoso"
        assert config.token_url == "https://login.example.com/contoso/oauth2/v2.0/token"
        assert config.scope == "https://analysis.windows.net/powerbi/api/.default"

    def test_secret_masked(self):
        config = PowerBIConfig(client_id="a", client_secret="super-secret-value", tenant_id="c")
        assert "super-secret-value" not in repr(config)
        assert config.to_dict()["client_secret"] == "supe...***"


class TestFromEnv:

    def test_reads_prefixed_variables(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("PBITEST_CLIENT_ID", "env-app")
        monkeypatch.setenv("PBITEST_CLIENT_SECRET", "env-secret")
        monkeypatch.setenv("PBITEST_TENANT_ID", "env-tenant")
        monkeypatch.setenv("PBITEST_REQUEST_TIMEOUT_SECONDS", "12.5")
        monkeypatch.setenv("PBITEST_WORKSPACE_PAGE_SIZE", "50")

        config = PowerBIConfig.from_env(prefix="PBITEST_")

        assert config.client_id == "env-app"
        assert config.tenant_id == "env-tenant"
        assert config.request_timeout_seconds == 12.5
        assert config.workspace_page_size == 50
        assert config.api_url == "https://api.powerbi.com"

    def test_reads_dotenv_file(self, monkeypatch, tmp_path):
        env_file = tmp_path / "connector.env"
        env_file.write_text("PBIDOTENV_TENANT_ID=file-tenant\nPBIDOTENV_CLIENT_ID=file-app\n")
        # Registered so monkeypatch removes what load_dotenv sets
        for name in ("PBIDOTENV_TENANT_ID", "PBIDOTENV_CLIENT_ID"):
            monkeypatch.setenv(name, "placeholder")
            monkeypatch.delenv(name)
        monkeypatch.setenv("PBIDOTENV_CLIENT_ID", "from-env")

        config = PowerBIConfig.from_env(prefix="PBIDOTENV_", dotenv_path=env_file)

        assert config.tenant_id == "file-tenant"
        # Existing variables win over the file
        assert config.client_id == "from-env"

    def test_invalid_number(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("PBIBAD_REQUEST_TIMEOUT_SECONDS", "fast")

        with pytest.raises(ConfigurationError) as exc_info:
            PowerBIConfig.from_env(prefix="PBIBAD_")

        assert exc_info.value.config_key == "request_timeout_seconds"


class TestFromYaml:

    def test_powerbi_section(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "powerbi:\n"
            "  client_id: yaml-app\n"
            "  client_secret: yaml-secret\n"
            "  tenant_id: yaml-tenant\n"
            "  default_poll_interval_seconds: 2\n"
        )

        config = PowerBIConfig.from_yaml(path)

        assert config.client_id == "yaml-app"
        assert config.default_poll_interval_seconds == 2.0
        config.validate()

    def test_flat_mapping_ignores_unknown_keys(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("tenant_id: flat\nunused: 1\n")

        config = PowerBIConfig.from_yaml(path)

        assert config.tenant_id == "flat"

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("powerbi: [unterminated\n")

        with pytest.raises(ConfigurationError):
            PowerBIConfig.from_yaml(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            PowerBIConfig.from_yaml(tmp_path / "absent.yaml")
