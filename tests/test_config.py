from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import yaml

import invoice_craft.config as config_mod
from invoice_craft.config import DispatchConfig

_EMAIL_VARS = ("EMAIL_SERVICE_ID", "EMAIL_TEMPLATE_ID", "EMAIL_PUBLIC_KEY")


@pytest.fixture
def clean_env(monkeypatch):
    for name in _EMAIL_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    d = tmp_path / "config"
    d.mkdir()
    monkeypatch.setattr(config_mod, "get_config_dir", lambda: d)
    return d


class TestDirectories:
    def test_data_dir_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("INVOICE_CRAFT_DATA_DIR", str(tmp_path))
        assert config_mod.get_data_dir() == tmp_path

    def test_config_dir_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("INVOICE_CRAFT_CONFIG_DIR", str(tmp_path))
        assert config_mod.get_config_dir() == tmp_path

    def test_data_dir_platform_default(self, monkeypatch, tmp_path):
        monkeypatch.delenv("INVOICE_CRAFT_DATA_DIR", raising=False)
        with patch(
            "invoice_craft.config.platformdirs.user_data_dir", return_value=str(tmp_path)
        ) as mock_dir:
            assert config_mod.get_data_dir() == tmp_path
        mock_dir.assert_called_once_with("invoice-craft")

    def test_config_dir_platform_default(self, monkeypatch, tmp_path):
        monkeypatch.delenv("INVOICE_CRAFT_CONFIG_DIR", raising=False)
        with patch(
            "invoice_craft.config.platformdirs.user_config_dir", return_value=str(tmp_path)
        ) as mock_dir:
            assert config_mod.get_config_dir() == tmp_path
        mock_dir.assert_called_once_with("invoice-craft")

    def test_env_change_is_picked_up(self, monkeypatch, tmp_path):
        monkeypatch.setenv("INVOICE_CRAFT_DATA_DIR", str(tmp_path / "one"))
        assert config_mod.get_data_dir() == tmp_path / "one"
        monkeypatch.setenv("INVOICE_CRAFT_DATA_DIR", str(tmp_path / "two"))
        assert config_mod.get_data_dir() == tmp_path / "two"


class TestDispatchConfig:
    def test_configured(self):
        assert DispatchConfig("svc", "tpl", "pub").is_configured is True

    @pytest.mark.parametrize(
        "values",
        [
            (None, "tpl", "pub"),
            ("svc", "", "pub"),
            ("svc", "tpl", "   "),
            ("your_service_id", "tpl", "pub"),
            ("svc", "tpl", "your_public_key"),
        ],
    )
    def test_not_configured(self, values):
        assert DispatchConfig(*values).is_configured is False

    def test_default_is_unconfigured(self):
        assert DispatchConfig().is_configured is False


class TestLoadDispatchConfig:
    def test_from_yaml(self, clean_env, config_dir):
        (config_dir / "dispatch.yaml").write_text(
            yaml.dump({"service_id": "svc", "template_id": "tpl", "public_key": "pub"})
        )
        with patch.object(config_mod, "_get_keyring_public_key", return_value=None):
            cfg = config_mod.load_dispatch_config()
        assert cfg == DispatchConfig("svc", "tpl", "pub")

    def test_env_overrides_yaml(self, clean_env, config_dir):
        (config_dir / "dispatch.yaml").write_text(
            yaml.dump({"service_id": "svc", "template_id": "tpl", "public_key": "pub"})
        )
        clean_env.setenv("EMAIL_SERVICE_ID", "env-svc")
        clean_env.setenv("EMAIL_PUBLIC_KEY", "env-pub")
        cfg = config_mod.load_dispatch_config()
        assert cfg.service_id == "env-svc"
        assert cfg.template_id == "tpl"
        assert cfg.public_key == "env-pub"

    def test_keyring_fallback_for_public_key(self, clean_env, config_dir):
        with patch.object(config_mod, "_get_keyring_public_key", return_value="kr-pub"):
            cfg = config_mod.load_dispatch_config()
        assert cfg.public_key == "kr-pub"
        assert cfg.is_configured is False

    def test_nothing_configured(self, clean_env, config_dir):
        with patch.object(config_mod, "_get_keyring_public_key", return_value=None):
            cfg = config_mod.load_dispatch_config()
        assert cfg == DispatchConfig()

    def test_empty_yaml(self, clean_env, config_dir):
        (config_dir / "dispatch.yaml").write_text("")
        with patch.object(config_mod, "_get_keyring_public_key", return_value=None):
            assert config_mod.load_dispatch_config() == DispatchConfig()


class TestKeyringHelpers:
    def test_get_public_key(self):
        mock_kr = MagicMock()
        mock_kr.get_password.return_value = "pub"
        with patch.dict("sys.modules", {"keyring": mock_kr}):
            assert config_mod._get_keyring_public_key() == "pub"
        mock_kr.get_password.assert_called_once_with(
            config_mod.KEYRING_SERVICE, config_mod.KEYRING_USERNAME
        )

    def test_get_public_key_backend_error(self):
        mock_kr = MagicMock()
        mock_kr.get_password.side_effect = RuntimeError("no backend")
        with patch.dict("sys.modules", {"keyring": mock_kr}):
            assert config_mod._get_keyring_public_key() is None

    def test_set_public_key(self):
        mock_kr = MagicMock()
        with patch.dict("sys.modules", {"keyring": mock_kr}):
            assert config_mod._set_keyring_public_key("pub") is True
        mock_kr.set_password.assert_called_once_with(
            config_mod.KEYRING_SERVICE, config_mod.KEYRING_USERNAME, "pub"
        )

    def test_set_public_key_failure(self):
        mock_kr = MagicMock()
        mock_kr.set_password.side_effect = RuntimeError("locked")
        with patch.dict("sys.modules", {"keyring": mock_kr}):
            assert config_mod._set_keyring_public_key("pub") is False


class TestRemoveBgKey:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("REMOVE_BG_API_KEY", "k")
        assert config_mod.get_remove_bg_api_key() == "k"

    def test_missing(self, monkeypatch):
        monkeypatch.delenv("REMOVE_BG_API_KEY", raising=False)
        with pytest.raises(KeyError):
            config_mod.get_remove_bg_api_key()
