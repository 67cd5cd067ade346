from pathlib import Path

import pytest

from skystep.config import (
    LivelogSettings,
    _deep_merge,
    load_config,
    resolve_pools,
    resolve_settings,
)
from skystep.core.exceptions import ConfigurationError
from skystep.livelog import HttpLogClient

pytestmark = [pytest.mark.unit]


class TestDeepMerge:
    def test_shallow_override(self):
        assert _deep_merge({"a": 1, "b": 2}, {"b": 3}) == {"a": 1, "b": 3}

    def test_nested_merge(self):
        base = {"pools": {"linux": {"image": "ami-1", "size": 1}}}
        override = {"pools": {"linux": {"size": 3}}}
        assert _deep_merge(base, override) == {"pools": {"linux": {"image": "ami-1", "size": 3}}}

    def test_does_not_mutate_base(self):
        base = {"runner": {"name": "a"}}
        _deep_merge(base, {"runner": {"name": "b"}})
        assert base == {"runner": {"name": "a"}}


class TestLoadConfig:
    def test_no_files_returns_empty_sections(self, tmp_path: Path):
        result = load_config(project_dir=tmp_path / "nope", global_path=tmp_path / "nope.toml")
        assert result == {"runner": {}, "livelog": {}, "logging": {}, "pools": {}}

    def test_project_overrides_global(self, tmp_path: Path):
        global_toml = tmp_path / "defaults.toml"
        global_toml.write_text('[runner]\nname = "global"\nnetwork_warmup = 30\n')
        project_dir = tmp_path / "project"
        project_dir.mkdir()
        (project_dir / "skystep.toml").write_text('[runner]\nname = "project"\n')

        result = load_config(project_dir=project_dir, global_path=global_toml)

        assert result["runner"] == {"name": "project", "network_warmup": 30}

    def test_invalid_toml_raises(self, tmp_path: Path):
        (tmp_path / "skystep.toml").write_text("[runner\n")
        with pytest.raises(ConfigurationError, match="Invalid TOML"):
            load_config(project_dir=tmp_path, global_path=tmp_path / "nope.toml")


class TestResolvePools:
    def test_pool_template(self, tmp_path: Path):
        (tmp_path / "skystep.toml").write_text(
            "[pools.linux]\n"
            "size = 2\n"
            'image = "ami-0123"\n'
            'instance_type = "t3.large"\n'
            'credentials = { region = "us-east-2" }\n'
            'network = { subnet_id = "subnet-1", security_groups = ["sg-1"] }\n'
        )
        config = load_config(project_dir=tmp_path, global_path=tmp_path / "nope.toml")

        pool = resolve_pools(config)["linux"]

        assert pool.size == 2
        assert pool.template.image == "ami-0123"
        assert pool.template.instance_type == "t3.large"
        assert pool.template.region == "us-east-2"
        assert pool.template.network.security_groups == ("sg-1",)
        assert pool.template.pool_name == "linux"
        assert pool.template.use_pool

    def test_negative_size_raises(self):
        with pytest.raises(ConfigurationError, match="non-negative"):
            resolve_pools({"pools": {"linux": {"size": -1}}})

    def test_unknown_template_field_raises(self):
        with pytest.raises(ConfigurationError):
            resolve_pools({"pools": {"linux": {"size": 1, "flavor": "large"}}})


class TestResolveSettings:
    def test_defaults(self, tmp_path: Path):
        settings = resolve_settings(project_dir=tmp_path, global_path=tmp_path / "nope.toml")

        assert settings.engine.runner_name == "skystep"
        assert settings.engine.pools == {}
        assert settings.livelog.limit == 5 * 1024 * 1024
        assert settings.logging.level == "INFO"

    def test_full_file(self, tmp_path: Path):
        (tmp_path / "skystep.toml").write_text(
            "[runner]\n"
            'name = "runner-1"\n'
            "network_warmup = 5\n"
            "rollback_on_failure = true\n"
            "\n"
            "[livelog]\n"
            'endpoint = "https://logs.example.com"\n'
            'account_id = "acc"\n'
            "limit = 1024\n"
            "\n"
            "[logging]\n"
            'level = "DEBUG"\n'
            "\n"
            "[pools.linux]\n"
            "size = 1\n"
            'image = "ami-0123"\n'
        )

        settings = resolve_settings(project_dir=tmp_path, global_path=tmp_path / "nope.toml")

        assert settings.engine.runner_name == "runner-1"
        assert settings.engine.network_warmup == 5
        assert settings.engine.rollback_on_failure
        assert set(settings.engine.pools) == {"linux"}
        assert settings.livelog.limit == 1024
        assert settings.logging.level == "DEBUG"

    def test_unknown_runner_key_raises(self, tmp_path: Path):
        (tmp_path / "skystep.toml").write_text("[runner]\nthreads = 4\n")
        with pytest.raises(ConfigurationError, match=r"\[runner\]"):
            resolve_settings(project_dir=tmp_path, global_path=tmp_path / "nope.toml")


class TestLivelogSettings:
    def test_client_requires_endpoint(self):
        with pytest.raises(ConfigurationError, match="endpoint"):
            LivelogSettings().client()

    def test_client(self):
        client = LivelogSettings(endpoint="https://logs.example.com", account_id="acc").client()
        assert isinstance(client, HttpLogClient)

    def test_token_hidden_from_repr(self):
        assert "s3cret" not in repr(LivelogSettings(token="s3cret"))
