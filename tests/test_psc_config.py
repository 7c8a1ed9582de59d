import pytest

from psc_config import CONFIG_FILE_ENV, is_toml_file, load_profile, pick
from psc_errors import ConfigurationError


@pytest.fixture
def ini_file(tmp_path):
    path = tmp_path / "psc.ini"
    path.write_text(
        "[DEFAULT]\nlog_level=INFO\npackage_name=com.example.default\n\n"
        "[release]\npackage_name=com.example.app\ntrack=internal\n",
        encoding="utf-8",
    )
    return str(path)


@pytest.fixture
def toml_file(tmp_path):
    path = tmp_path / "psc.toml"
    path.write_text(
        'log_level = "INFO"\npackage_name = "com.example.default"\n\n'
        '[release]\npackage_name = "com.example.app"\ntrack = "internal"\n',
        encoding="utf-8",
    )
    return str(path)


# Test intent: INI and TOML profile files resolve the same named profile to
# the same keys.
def test_ini_and_toml_profiles_agree(ini_file, toml_file):
    from_ini = load_profile(ini_file, "release", environ={})
    from_toml = load_profile(toml_file, "release", environ={})

    assert from_ini["package_name"] == from_toml["package_name"] == "com.example.app"
    assert from_ini["track"] == from_toml["track"] == "internal"


def test_toml_top_level_keys_are_default_profile(toml_file):
    cfg = load_profile(toml_file, None, environ={})

    assert cfg == {"log_level": "INFO", "package_name": "com.example.default"}


def test_config_file_from_environment(ini_file):
    cfg = load_profile(None, "release", environ={CONFIG_FILE_ENV: ini_file})

    assert cfg["track"] == "internal"


def test_no_config_file_is_empty_profile():
    assert load_profile(None, None, environ={}) == {}


def test_missing_config_file_is_an_error(tmp_path):
    with pytest.raises(ConfigurationError):
        load_profile(str(tmp_path / "nope.ini"), None, environ={})


# Test intent: asking for a profile that is not in the file fails instead of
# silently using defaults.
def test_unknown_profile_is_an_error(ini_file):
    with pytest.raises(ConfigurationError) as exc:
        load_profile(ini_file, "staging", environ={})

    assert "staging" in str(exc.value)


def test_malformed_toml_is_an_error(tmp_path):
    path = tmp_path / "broken.toml"
    path.write_text("package_name = \n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_profile(str(path), None, environ={})


def test_is_toml_file_detection(tmp_path, ini_file, toml_file):
    assert is_toml_file(toml_file)
    assert not is_toml_file(ini_file)
    unnamed = tmp_path / "pscrc"
    unnamed.write_text('track = "beta"\n', encoding="utf-8")
    assert is_toml_file(str(unnamed))


# Test intent: CLI beats environment beats profile beats built-in default.
def test_pick_precedence():
    profile = {"package_name": "from.profile", "log_level": "ERROR"}
    env = {"PSC_PACKAGE_NAME": "from.env"}

    assert pick("package_name", "from.cli", profile, env_name="PSC_PACKAGE_NAME", environ=env) == "from.cli"
    assert pick("package_name", None, profile, env_name="PSC_PACKAGE_NAME", environ=env) == "from.env"
    assert pick("package_name", None, profile, env_name="PSC_PACKAGE_NAME", environ={}) == "from.profile"
    assert pick("log_level", None, {}, environ={}) == "WARNING"
    assert pick("status", None, {"status": ""}, environ={}) == "completed"
    assert pick("track", None, {}, environ={}) is None


def test_pick_casts_env_and_profile_values():
    assert pick("user_fraction", None, {"user_fraction": "0.5"}, cast=float, environ={}) == 0.5
    assert pick("user_fraction", None, {}, env_name="X", cast=float, environ={"X": "0.2"}) == 0.2


# Test intent: a profile file that is not valid UTF-8 is a configuration
# error for both formats.
@pytest.mark.parametrize("name", ["psc.ini", "psc.toml", "pscrc"])
def test_non_utf8_config_file_is_an_error(tmp_path, name):
    path = tmp_path / name
    path.write_bytes(b"\xff\xfe[release]\n")

    with pytest.raises(ConfigurationError) as exc:
        load_profile(str(path), "release", environ={})

    assert "Failed to read" in str(exc.value)
