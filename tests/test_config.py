"""
Tests for configuration loading — profile YAML parsing and validation.
"""

import textwrap
from pathlib import Path

import pytest

from provisioner.core.config.loader import (
    PROFILE_ENV_VAR,
    ConfigError,
    find_profile_file,
    load_profile,
    parse_profile,
)
from provisioner.core.use_cases.config_check import check_config


@pytest.fixture
def valid_profile_yml(tmp_path: Path) -> Path:
    """Create a valid profile in a temp directory."""
    content = textwrap.dedent("""\
        name: test-profile
        description: "A test profile"
        settings:
          min_free_gb: 1
          retry:
            max_attempts: 3
        steps:
          - name: apt-update
            kind: apt_update
            policy: fatal
          - name: apt-base
            kind: apt
            packages: [git, curl]
          - name: omz
            kind: user_command
            command: [sh, -c, "echo hi"]
            creates: "{home}/.oh-my-zsh"
        verify:
          - capability: git
            binary: git
        follow_up:
          - "Log in as {user}"
    """)
    path = tmp_path / "profile.yml"
    path.write_text(content)
    return path


@pytest.fixture
def wrapped_profile_yml(tmp_path: Path) -> Path:
    """Create a profile with content under a 'profile:' key."""
    content = textwrap.dedent("""\
        profile:
          name: wrapped-profile
          steps:
            - name: apt-update
              kind: apt_update
    """)
    path = tmp_path / "profile.yml"
    path.write_text(content)
    return path


class TestLoadProfile:
    def test_valid(self, valid_profile_yml):
        profile = load_profile(valid_profile_yml)
        assert profile.name == "test-profile"
        assert [s.name for s in profile.steps] == ["apt-update", "apt-base", "omz"]
        assert profile.settings.min_free_gb == 1
        assert profile.settings.retry.max_attempts == 3
        assert profile.settings.retry.initial_backoff == 30
        assert profile.follow_up == ["Log in as {user}"]

    def test_wrapped(self, wrapped_profile_yml):
        profile = load_profile(wrapped_profile_yml)
        assert profile.name == "wrapped-profile"
        assert len(profile.steps) == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Profile not found"):
            load_profile(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("name: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_profile(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="Expected a YAML mapping"):
            load_profile(path)

    def test_schema_error_names_location(self, tmp_path):
        path = tmp_path / "p.yml"
        path.write_text("name: p\nsteps:\n  - name: a\n    kind: brew\n")
        with pytest.raises(ConfigError, match=r"steps\.0\.kind"):
            load_profile(path)

    def test_env_var(self, valid_profile_yml, monkeypatch):
        monkeypatch.setenv(PROFILE_ENV_VAR, str(valid_profile_yml))
        assert load_profile().name == "test-profile"

    def test_packaged_default(self, monkeypatch):
        monkeypatch.delenv(PROFILE_ENV_VAR, raising=False)
        profile = load_profile()
        assert profile.name == "security-desktop"
        assert profile.get_step("apt-update").policy == "fatal"
        assert profile.get_step("venv").policy == "fatal"
        assert profile.verify


class TestFindProfileFile:
    def test_unset(self):
        assert find_profile_file({}) is None

    def test_blank(self):
        assert find_profile_file({PROFILE_ENV_VAR: "  "}) is None

    def test_set(self, tmp_path):
        assert find_profile_file({PROFILE_ENV_VAR: str(tmp_path / "p.yml")}) == tmp_path / "p.yml"


class TestParseProfile:
    def test_source_in_error(self):
        with pytest.raises(ConfigError, match="<inline>"):
            parse_profile("steps: []\n", source="<inline>")


class TestCheckConfig:
    def test_valid(self, valid_profile_yml):
        result = check_config(valid_profile_yml)
        assert result.valid
        assert result.errors == []
        data = result.to_dict()
        assert data["profile_name"] == "test-profile"
        assert data["step_count"] == 3
        assert data["verify_count"] == 1

    def test_invalid(self, tmp_path):
        result = check_config(tmp_path / "missing.yml")
        assert not result.valid
        assert result.profile is None
        assert "Profile not found" in result.errors[0]

    def test_duplicate_package_step_rejected(self, tmp_path):
        path = tmp_path / "p.yml"
        path.write_text(textwrap.dedent("""\
            name: p
            steps:
              - name: pkgs
                kind: venv_packages
                packages: [ldap3, "ldap3>=2.9"]
        """))
        with pytest.raises(ConfigError, match="duplicate step name: 'pkgs:ldap3'"):
            load_profile(path)
        result = check_config(path)
        assert not result.valid
        assert "pkgs:ldap3" in result.errors[0]

    def test_warnings(self, tmp_path):
        path = tmp_path / "p.yml"
        path.write_text(textwrap.dedent("""\
            name: p
            steps:
              - name: rustup
                kind: user_command
                command: [sh, -c, "curl https://sh.rustup.rs | sh"]
        """))
        result = check_config(path)
        assert result.valid
        assert any("No verification entries" in w for w in result.warnings)
        assert any("'rustup'" in w for w in result.warnings)

    def test_packaged_default_is_valid(self, monkeypatch):
        monkeypatch.delenv(PROFILE_ENV_VAR, raising=False)
        assert check_config().valid
