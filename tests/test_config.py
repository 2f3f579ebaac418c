"""
Configuration tests: defaults, config.yaml, environment, overrides.
"""

from pathlib import Path

from eclipse_core.config import Settings, load_settings


class TestDefaults:

    def test_layout_under_data_dir(self, temp_data_dir):
        settings = Settings(data_dir=temp_data_dir)
        assert settings.profiles_dir == temp_data_dir / "profiles"
        assert settings.model_cache_dir == temp_data_dir / ".cache" / "models"

    def test_embedding_defaults(self):
        settings = Settings()
        assert settings.embedding_model == "all-MiniLM-L6-v2"
        assert settings.embedding_max_attempts == 3
        assert settings.embedding_max_chars == 2000


class TestLoading:

    def test_environment_overrides_defaults(self, temp_data_dir, clean_env):
        clean_env.setenv("ECLIPSE_DATA_DIR", str(temp_data_dir))
        clean_env.setenv("ECLIPSE_PROFILE", "forced")
        clean_env.setenv("ECLIPSE_EMBEDDING_RETRIES", "5")

        settings = load_settings()

        assert settings.data_dir == temp_data_dir
        assert settings.profile_override == "forced"
        assert settings.embedding_max_attempts == 5

    def test_yaml_file_is_read(self, temp_data_dir, clean_env):
        (temp_data_dir / "config.yaml").write_text(
            "embedding_retry_delay: 0.25\nlog_level: DEBUG\n"
        )
        settings = load_settings(data_dir=temp_data_dir)

        assert settings.embedding_retry_delay == 0.25
        assert settings.log_level == "DEBUG"

    def test_environment_beats_yaml(self, temp_data_dir, clean_env):
        (temp_data_dir / "config.yaml").write_text("log_level: DEBUG\n")
        clean_env.setenv("ECLIPSE_LOG_LEVEL", "WARNING")

        settings = load_settings(data_dir=temp_data_dir)
        assert settings.log_level == "WARNING"

    def test_broken_yaml_is_ignored(self, temp_data_dir, clean_env):
        (temp_data_dir / "config.yaml").write_text("log_level: [unclosed\n")
        settings = load_settings(data_dir=temp_data_dir)
        assert settings.log_level == "INFO"

    def test_unknown_yaml_keys_are_ignored(self, temp_data_dir, clean_env):
        (temp_data_dir / "config.yaml").write_text("colour: blue\n")
        settings = load_settings(data_dir=temp_data_dir)
        assert not hasattr(settings, "colour")

    def test_overrides_win(self, temp_data_dir, clean_env):
        clean_env.setenv("ECLIPSE_PROFILE", "from-env")
        settings = load_settings(data_dir=temp_data_dir, profile_override="explicit")
        assert settings.profile_override == "explicit"

    def test_paths_are_expanded(self, clean_env):
        settings = load_settings(data_dir="~/somewhere")
        assert settings.data_dir == Path.home() / "somewhere"


class TestInvalidValues:

    def test_bad_environment_number_keeps_default(self, temp_data_dir, clean_env):
        clean_env.setenv("ECLIPSE_EMBEDDING_RETRIES", "lots")
        settings = load_settings(data_dir=temp_data_dir)
        assert settings.embedding_max_attempts == 3

    def test_bad_yaml_number_keeps_default(self, temp_data_dir, clean_env):
        (temp_data_dir / "config.yaml").write_text("embedding_retry_delay: soon\nlog_level: DEBUG\n")
        settings = load_settings(data_dir=temp_data_dir)

        assert settings.embedding_retry_delay == 1.0
        assert settings.log_level == "DEBUG"

    def test_bad_environment_value_falls_back_to_yaml(self, temp_data_dir, clean_env):
        (temp_data_dir / "config.yaml").write_text("embedding_max_attempts: 7\n")
        clean_env.setenv("ECLIPSE_EMBEDDING_RETRIES", "lots")

        settings = load_settings(data_dir=temp_data_dir)
        assert settings.embedding_max_attempts == 7
