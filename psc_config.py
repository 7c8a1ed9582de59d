# MIT License
# Copyright (c) 2025 Gordon Trevorrow
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

"""Profile files and option layering for the psc tools.

Precedence (highest first):
  1. CLI flag
  2. Environment variable
  3. Profile file (--config-file / PSC_CONFIG_FILE), section --profile
  4. Built-in default

Profile files are INI (one section per profile) or TOML (one table
per profile, or top-level keys for DEFAULT).
"""

import configparser
import logging
import os
from typing import Any, Callable, Dict, Mapping, Optional

import toml

from psc_errors import ConfigurationError

LOG = logging.getLogger("psc.config")

CONFIG_FILE_ENV = "PSC_CONFIG_FILE"
DEFAULT_PROFILE = "DEFAULT"

DEFAULTS = {
    "log_level": "WARNING",
    "status": "completed",
}


def is_toml_file(path: str) -> bool:
    """TOML when named so, or when it parses; INI with bare string values never does."""
    lowered = path.lower()
    if lowered.endswith(".toml"):
        return True
    if lowered.endswith(".ini") or lowered.endswith(".cfg"):
        return False
    try:
        toml.load(path)
    except (toml.TomlDecodeError, UnicodeDecodeError, OSError):
        return False
    return True


def load_profile_from_toml(path: str, profile: str) -> Dict[str, Any]:
    try:
        data = toml.load(path)
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Failed to read TOML config {path}: {e}")
    except toml.TomlDecodeError as e:
        raise ConfigurationError(f"Failed to parse TOML config {path}: {e}")

    if profile in data and isinstance(data[profile], dict):
        return {k.lower(): v for k, v in data[profile].items()}
    if profile.lower() in data and isinstance(data[profile.lower()], dict):
        return {k.lower(): v for k, v in data[profile.lower()].items()}
    if profile.upper() == DEFAULT_PROFILE:
        # top-level keys act as the DEFAULT profile
        return {k.lower(): v for k, v in data.items() if not isinstance(v, dict)}
    return {}


def load_profile_from_ini(path: str, profile: str) -> Dict[str, Any]:
    cp = configparser.ConfigParser()
    try:
        # read_file, unlike read, does not skip files it cannot open
        with open(path, "r", encoding="utf-8") as f:
            cp.read_file(f)
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Failed to read INI config {path}: {e}")
    except configparser.Error as e:
        raise ConfigurationError(f"Failed to parse INI config {path}: {e}")
    if profile in cp:
        return {k.lower(): v for k, v in cp[profile].items()}
    return {}


def load_profile(config_file: Optional[str], profile: Optional[str], environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Return the selected profile as a dict of lower-case keys.

    No config file at all is fine (empty profile). A config file that was named
    explicitly but cannot be read is a configuration error.
    """
    env = os.environ if environ is None else environ
    path = config_file or env.get(CONFIG_FILE_ENV)
    if not path:
        return {}
    path = os.path.expanduser(path)
    if not os.path.isfile(path):
        raise ConfigurationError(f"Config file not found: {path}")
    profile = profile or DEFAULT_PROFILE
    if is_toml_file(path):
        cfg = load_profile_from_toml(path, profile)
        LOG.debug("Loaded profile %s from TOML %s (%d keys)", profile, path, len(cfg))
    else:
        cfg = load_profile_from_ini(path, profile)
        LOG.debug("Loaded profile %s from INI %s (%d keys)", profile, path, len(cfg))
    if not cfg and profile != DEFAULT_PROFILE:
        raise ConfigurationError(f"Profile '{profile}' not found in config file {path}")
    return cfg


def pick(
    name: str,
    cli_val: Any,
    profile: Mapping[str, Any],
    env_name: Optional[str] = None,
    cast: Optional[Callable[[Any], Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Any:
    if cli_val is not None:
        return cli_val
    env = os.environ if environ is None else environ
    if env_name and env.get(env_name):
        val = env[env_name]
        return cast(val) if cast else val
    if name in profile and profile[name] != "":
        val = profile[name]
        return cast(val) if cast else val
    return DEFAULTS.get(name)
