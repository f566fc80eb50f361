import pytest
import yaml

from tangent import settings
from tangent.errors import ConfigError
from tangent.models import AppConfig


class TestHome:
    def test_first_use_creates_defaults(self, tangent_home):
        root = settings.ensure_tangent_dir()
        assert root == tangent_home
        assert (root / "config.yaml").is_file()
        assert (root / "default.yaml").is_file()

    def test_existing_files_are_kept(self, tangent_home):
        tangent_home.mkdir(parents=True)
        (tangent_home / "config.yaml").write_text("openai_api_key: sk-file\n", encoding="utf-8")
        settings.ensure_tangent_dir()
        assert "sk-file" in (tangent_home / "config.yaml").read_text(encoding="utf-8")

    def test_history_dir_follows_home(self, tangent_home):
        assert settings.history_dir() == tangent_home / "history"


class TestConfig:
    def test_env_fills_missing_keys(self, tangent_home, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        cfg = settings.load_config()
        assert cfg.openai_api_key == "sk-env"
        assert cfg.anthropic_api_key == ""
        assert cfg.current_profile == "default.yaml"

    def test_file_key_wins_over_env(self, tangent_home, monkeypatch):
        tangent_home.mkdir(parents=True)
        (tangent_home / "config.yaml").write_text("openai_api_key: sk-file\n", encoding="utf-8")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        assert settings.load_config().openai_api_key == "sk-file"

    def test_env_keys_are_not_written_back(self, tangent_home, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        cfg = settings.load_config()
        cfg.current_profile = "work.yaml"
        settings.save_config(cfg)
        data = yaml.safe_load((tangent_home / "config.yaml").read_text(encoding="utf-8"))
        assert data["current_profile"] == "work.yaml"
        assert data["openai_api_key"] == ""

    @pytest.mark.parametrize("content", ["openai_api_key: [unclosed\n", "- a list\n", "colour: blue\n"])
    def test_invalid_config(self, tangent_home, content):
        tangent_home.mkdir(parents=True)
        (tangent_home / "config.yaml").write_text(content, encoding="utf-8")
        with pytest.raises(ConfigError):
            settings.load_config()


class TestProfiles:
    def test_load_current_profile(self, tangent_home):
        profile = settings.load_profile(AppConfig())
        assert profile.profile_name == "default"

    def test_load_named_profile_without_suffix(self, tangent_home):
        settings.ensure_tangent_dir()
        (tangent_home / "work.yaml").write_text(
            "profile_name: work\nvendor: anthropic\nmodel: claude-test\nmessages:\n- role: User\n  content: hi\n",
            encoding="utf-8",
        )
        profile = settings.load_profile(AppConfig(), "work")
        assert profile.vendor == "anthropic"
        assert profile.messages[0].role == "user"

    def test_missing_profile(self, tangent_home):
        with pytest.raises(ConfigError):
            settings.load_profile(AppConfig(), "nope")

    def test_invalid_profile(self, tangent_home):
        settings.ensure_tangent_dir()
        (tangent_home / "bad.yaml").write_text("vendor: acme\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            settings.load_profile(AppConfig(), "bad.yaml")

    def test_list_profiles_excludes_config(self, tangent_home):
        settings.ensure_tangent_dir()
        (tangent_home / "work.yaml").write_text("profile_name: work\n", encoding="utf-8")
        assert settings.list_profiles() == ["default.yaml", "work.yaml"]
