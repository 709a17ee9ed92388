# Copyright 2024 D-Wave Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Config file discovery and loading, and environment/keyword overrides."""

import configparser
import logging
import os
from typing import Optional, Union

import homebase

from sapi.exceptions import ConfigFileReadError, ConfigFileParseError

__all__ = ['get_configfile_paths', 'load_config_from_files', 'load_profile_from_files',
           'load_config', 'update_config', 'ENV_OPTION_MAP']

logger = logging.getLogger(__name__)

CONF_APP = "sapi"
CONF_AUTHOR = "dwavesystem"
CONF_FILENAME = "sapi.conf"

ENV_OPTION_MAP = {
    # legacy variables first, so the SAPI_* equivalents override them
    'DW_INTERNAL__HTTPLINK': 'endpoint',
    'DW_INTERNAL__TOKEN': 'token',
    'DW_INTERNAL__HTTPPROXY': 'proxy',
    'DW_INTERNAL__SOLVER': 'solver',
    'SAPI_API_ENDPOINT': 'endpoint',
    'SAPI_API_TOKEN': 'token',
    'SAPI_API_PROXY': 'proxy',
    'SAPI_API_SOLVER': 'solver',
}
"""Map of environment variable names to config options."""


def get_configfile_paths(system: bool = True, user: bool = True, local: bool = True,
                         only_existing: bool = True) -> list[str]:
    """Return a list of local configuration file paths, ordered from lowest
    to highest priority.

    Search paths are based on homebase_; on Linux, for example, these are
    system-wide ``/etc/xdg/sapi/sapi.conf``, user-local
    ``~/.config/sapi/sapi.conf`` and ``./sapi.conf`` in the current working
    directory.

    .. _homebase: https://github.com/dwavesystems/homebase

    Args:
        system:
            Search for system-wide configuration files.
        user:
            Search for user-local configuration files.
        local:
            Search for local configuration files (in CWD).
        only_existing:
            Return only paths for files that exist on the local system.
    """

    candidates = []

    if system:
        candidates.extend(homebase.site_config_dir_list(
            app_author=CONF_AUTHOR, app_name=CONF_APP,
            use_virtualenv=False, create=False))

    if user:
        candidates.append(homebase.user_config_dir(
            app_author=CONF_AUTHOR, app_name=CONF_APP, roaming=False,
            use_virtualenv=False, create=False))

    if local:
        candidates.append(".")

    paths = [os.path.join(base, CONF_FILENAME) for base in candidates]
    if only_existing:
        paths = list(filter(os.path.exists, paths))

    return paths


def load_config_from_files(filenames: Optional[list[str]] = None) -> configparser.ConfigParser:
    """Load configuration from a list of files.

    Each file loaded progressively updates the configuration, key by key,
    per section. A section called ``defaults`` holds values inherited by
    all other sections.

    Args:
        filenames:
            Configuration file paths. If ``None``, files found by
            :func:`get_configfile_paths` are used.

    Raises:
        :exc:`~sapi.exceptions.ConfigFileReadError`:
            Config file could not be opened or read.

        :exc:`~sapi.exceptions.ConfigFileParseError`:
            Config file parse failed.
    """
    if filenames is None:
        filenames = get_configfile_paths()

    config = configparser.ConfigParser(default_section="defaults")
    for filename in filenames:
        try:
            filename = os.path.expandvars(os.path.expanduser(filename))
            with open(filename, 'r') as f:
                config.read_file(f, filename)
        except OSError as exc:
            raise ConfigFileReadError(f"Failed to read {filename!r}") from exc
        except configparser.Error as exc:
            raise ConfigFileParseError(f"Failed to parse {filename!r}") from exc
    return config


def load_profile_from_files(filenames: Optional[list[str]] = None,
                            profile: Optional[str] = None) -> dict:
    """Load a profile (section) from a list of configuration files.

    If ``profile`` is not given, it falls back to (1) the ``profile`` key of
    the ``[defaults]`` section, (2) the first non-defaults section, and
    (3) the ``[defaults]`` section itself.

    Raises:
        :exc:`~sapi.exceptions.ConfigFileReadError`,
        :exc:`~sapi.exceptions.ConfigFileParseError`,
        :exc:`ValueError`: profile not found.
    """

    config = load_config_from_files(filenames)

    first_section = next(iter(config.sections() + [None]))
    config_defaults = config.defaults()
    if not profile:
        profile = config_defaults.get('profile', first_section)

    if profile:
        try:
            section = dict(config[profile])
        except KeyError:
            raise ValueError(f"Config profile {profile!r} not found") from None
    else:
        section = dict(config_defaults)

    section.pop('profile', None)
    return section


def update_config(config: dict, options: dict) -> None:
    """Update ``config`` in place with ``options``, ignoring ``None`` and
    blank string values."""
    config.update({k: v for k, v in options.items() if v is not None and v != ''})


def update_config_from_environment(section: dict) -> None:
    """Update config ``section`` with values from environment variables
    listed in :data:`ENV_OPTION_MAP`."""
    for env, option in ENV_OPTION_MAP.items():
        update_config(section, {option: os.getenv(env)})


def load_config(config_file: Union[str, list[str], bool, None] = None,
                profile: Optional[str] = None,
                **kwargs) -> dict:
    """Load configuration options for a profile.

    Values are ranked (highest first): keyword arguments, environment
    variables, configuration file.

    Args:
        config_file:
            Path to configuration file(s). If ``None``, taken from the
            ``SAPI_CONFIG_FILE`` environment variable, or auto-detected when
            that is undefined. ``False`` skips file loading, ``True`` forces
            auto-detection.

        profile:
            Profile name. If ``None``, taken from ``SAPI_PROFILE``.

        **kwargs:
            Option overrides.

    Returns:
        Flat mapping of config option names to values.
    """

    logger.trace("load_config(config_file=%r, profile=%r, kwargs=%r)",
                 config_file, profile, kwargs)

    if profile is None:
        profile = os.getenv("SAPI_PROFILE")

    if config_file is False:
        section = {}
    elif config_file is True:
        section = load_profile_from_files(None, profile)
    else:
        if config_file is None:
            config_file = os.getenv("SAPI_CONFIG_FILE")

        filenames = None
        if config_file:
            if isinstance(config_file, str):
                filenames = [config_file]
            else:
                filenames = config_file

        section = load_profile_from_files(filenames, profile)

    logger.trace("config (from files) = %r", section)

    update_config_from_environment(section)
    logger.trace("config (from files+env) = %r", section)

    update_config(section, kwargs)
    logger.trace("config (from files+env+kwargs) = %r", section)

    return section
