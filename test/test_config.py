import os
from pathlib import Path
from unittest import TestCase
from unittest.mock import patch

from rvn_fallback.config import (
    BinaryRepositoryConfig,
    BinaryRepositoryEnvironment,
    Settings,
    add_http_fallback,
    default_arch,
    split_list,
)

DEFAULT_MIRRORS = ["https://dl-cdn.alpinelinux.org/alpine", "http://dl-cdn.alpinelinux.org/alpine"]


def _clean_environ() -> dict[str, str]:
    return {k: v for k, v in os.environ.items() if not k.startswith("RVN_")}


class TestHelpers(TestCase):
    def test_split_list(self) -> None:
        assert split_list(" a, ,b ,") == ["a", "b"]
        assert split_list(None) == []

    def test_http_fallback(self) -> None:
        assert add_http_fallback(["https://a/", "http://b", "https://a"]) == ["https://a", "http://a", "http://b"]

    def test_arch_aliases(self) -> None:
        with patch("platform.machine", return_value="arm64"):
            assert default_arch() == "aarch64"
        with patch("platform.machine", return_value="AMD64"):
            assert default_arch() == "x86_64"
        with patch("platform.machine", return_value="riscv64"):
            assert default_arch() == "riscv64"


class TestBinaryRepositoryEnvironment(TestCase):
    def test_defaults(self) -> None:
        with patch.dict(os.environ, _clean_environ(), clear=True):
            config = BinaryRepositoryEnvironment().to_config()
        assert config.mirrors == DEFAULT_MIRRORS
        assert config.branches == ["v3.20", "v3.19", "edge"]
        assert config.repos == ["main", "community"]
        assert config.arch == default_arch()

    def test_plural_overrides(self) -> None:
        env = {
            **_clean_environ(),
            "RVN_ALPINE_MIRRORS": "https://one.example/alpine/, http://two.example/alpine",
            "RVN_ALPINE_MIRROR": "https://ignored.example",
            "RVN_ALPINE_BRANCHES": "edge,,v3.18",
            "RVN_ALPINE_ARCH": "armv7",
            "RVN_ALPINE_REPOS": "main,testing",
        }
        with patch.dict(os.environ, env, clear=True):
            config = BinaryRepositoryEnvironment().to_config()
        assert config.mirrors == ["https://one.example/alpine", "http://one.example/alpine", "http://two.example/alpine"]
        assert config.branches == ["edge", "v3.18"]
        assert config.arch == "armv7"
        assert config.repos == ["main", "testing"]

    def test_singular_overrides(self) -> None:
        env = {**_clean_environ(), "RVN_ALPINE_MIRROR": "http://local/alpine", "RVN_ALPINE_BRANCH": "v3.19"}
        with patch.dict(os.environ, env, clear=True):
            config = BinaryRepositoryEnvironment().to_config()
        assert config.mirrors == ["http://local/alpine"]
        assert config.branches == ["v3.19"]

    def test_blank_values_use_defaults(self) -> None:
        env = {**_clean_environ(), "RVN_ALPINE_MIRRORS": " , ", "RVN_ALPINE_ARCH": "  "}
        with patch.dict(os.environ, env, clear=True):
            config = BinaryRepositoryEnvironment().to_config()
        assert config.mirrors == DEFAULT_MIRRORS
        assert config.arch == default_arch()


class TestBinaryRepositoryConfig(TestCase):
    def test_mirrors_are_stripped(self) -> None:
        config = BinaryRepositoryConfig(mirrors=[" http://a/ ", ""])
        assert config.mirrors == ["http://a"]


class TestSettings(TestCase):
    def test_source_config(self) -> None:
        with patch.dict(os.environ, _clean_environ(), clear=True):
            settings = Settings(
                _cli_parse_args=False,
                cache_dir=Path("/var/cache/rvn"),
                no_source=True,
                skip_out_of_date=True,
            )
        config = settings.source_config()
        assert not config.enabled
        assert config.skip_out_of_date
        assert config.cache_dir == Path("/var/cache/rvn/aur")
        assert config.build_dir == Path("/var/cache/rvn/aur-build")
        assert config.clean_build

    def test_environment(self) -> None:
        env = {**_clean_environ(), "RVN_TARGET": "yay", "RVN_LOG_LEVEL": "debug"}
        with patch.dict(os.environ, env, clear=True):
            settings = Settings(_cli_parse_args=False)
        assert settings.target == "yay"
        assert settings.log_level == "debug"
