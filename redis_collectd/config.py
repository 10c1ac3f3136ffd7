#
#  Copyright 2015-2016 Bleemeo
#
#  bleemeo.com an infrastructure monitoring solution in the Cloud
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.
#

"""
Load configuration (in yaml) from a "conf.d" folder.

Path to configuration are hardcoded, in this order:

* /etc/redis-collectd/redis-collectd.conf
* /etc/redis-collectd/conf.d/*.conf
* etc/redis-collectd.conf
* etc/conf.d/*.conf

Any value could be overridden with an environment variable named
REDIS_COLLECTD_ followed by the option name in upper case, with "." replaced
by "_" (e.g. REDIS_COLLECTD_REDIS_HOST). COLLECTD_INTERVAL, set by collectd
exec plugin, overrides collectd.interval.
"""


import functools
import glob
import os

import yaml


PATHS = [
    '/etc/redis-collectd/redis-collectd.conf',
    '/etc/redis-collectd/conf.d',
    'etc/redis-collectd.conf',
    'etc/conf.d',
]


CONFIG_VARS = [
    ('redis.host', 'string', 'localhost'),
    ('redis.port', 'int', 6379),
    ('redis.password', 'string', None),
    ('redis.socket_timeout', 'float', 5.0),
    ('collectd.interval', 'float', 10.0),
    ('collectd.executable', 'string', '/usr/bin/redis-collectd'),
    ('collectd.user', 'string', 'nobody'),
    ('logging.level', 'string', 'INFO'),
    ('logging.output', 'string', 'console'),
    ('logging.output_file', 'string', None),
]


# Environment variables set by collectd itself
COLLECTD_ENV_VARS = {
    'COLLECTD_INTERVAL': 'collectd.interval',
}


class Config:
    """
    Work exacly like a normal dict, but "get" method known about sub-dict

    Also add "set" method that known about sub-dict.
    """
    def __init__(self, initial_dict=None):
        if initial_dict is None:
            self._internal_dict = {}
        else:
            self._internal_dict = initial_dict

    def __getitem__(self, key):
        """ If the name contains separator ('.'), it will search in sub-dict.

            Example, if your config is {'redis': {'port': 6379}}, then
            config['redis.port'] will return 6379
        """
        current = self._internal_dict
        for path in key.split('.'):
            if not isinstance(current, dict) or path not in current:
                raise KeyError("{} is not a valid key in config".format(key))
            current = current[path]
        return current

    def __setitem__(self, key, value):
        """ If name contains separator ("."), it will search in sub-dict.

            It does create intermediary dict as needed.
        """
        current = self._internal_dict
        splitted_key = key.split('.')
        (paths, last_key) = (splitted_key[:-1], splitted_key[-1])
        for path in paths:
            if not isinstance(current.get(path), dict):
                current[path] = {}
            current = current[path]
        current[last_key] = value

    def __delitem__(self, key):
        """ It does NOT delete empty parent.
        """
        current = self._internal_dict
        splitted_key = key.split('.')
        (paths, last_key) = (splitted_key[:-1], splitted_key[-1])
        for path in paths:
            current = current[path]
        del current[last_key]

    def get(self, key, default=None):
        try:
            return self[key]
        except KeyError:
            return default

    def merge(self, source):
        if isinstance(source, Config):
            self._internal_dict = merge_dict(
                self._internal_dict,
                source._internal_dict  # pylint: disable=W0212
            )
        return self


def convert_type(value_text, value_type):
    """ Convert string value to given value_type

        Usefull for parameter from environment or YAML files that must be
        case to Python type (e.g. port: "6379")

        Supported value_type:

        * string: no convertion
        * int: int() from Python
        * float: float() from Python
    """
    if value_type == 'string':
        return value_text

    if value_type == 'int':
        return int(value_text)
    elif value_type == 'float':
        return float(value_text)
    else:
        raise NotImplementedError('Unknown type %s' % value_type)


def convert_conf_name(conf_name):
    """ Convert the conf_name in env_name for load_config()."""
    return 'REDIS_COLLECTD_' + conf_name.replace('.', '_').upper()


def merge_dict(destination, source):
    """ Merge two dictionary (recursivly). destination is modified

        List are merged by appending source' list to destination' list
    """
    for (key, value) in source.items():
        if (key in destination
                and isinstance(value, dict)
                and isinstance(destination[key], dict)):
            destination[key] = merge_dict(destination[key], value)
        elif (key in destination
              and isinstance(value, list)
              and isinstance(destination[key], list)):
            destination[key].extend(value)
        else:
            destination[key] = value
    return destination


def load_default_config():
    """ Initialization of the default configuration """
    default_config = Config()
    for (conf_name, _conf_type, conf_value) in CONFIG_VARS:
        default_config[conf_name] = conf_value
    return default_config


def _conf_type(conf_name):
    for (name, conf_type, _conf_value) in CONFIG_VARS:
        if name == conf_name:
            return conf_type
    return 'string'


def load_config(paths=None):
    """ Load configuration from given paths (a list) and return a Config
        and the list of errors encountered

        If paths is not provided, use default value (PATH, see doc from module)
    """
    if paths is None:
        paths = PATHS

    default_config = {}
    errors = []

    configs = [default_config]
    for filepath in config_files(paths):
        try:
            with open(filepath) as config_file:
                config = yaml.safe_load(config_file)

                # config could be None if file is empty.
                # config could be non-dict if top-level of file is another YAML
                # type, like a list or just a string.
                if config is not None and isinstance(config, dict):
                    configs.append(config)
                elif config is not None:
                    errors.append(
                        'wrong format for file "%s"' % filepath
                    )

        except (OSError, yaml.YAMLError) as exc:
            errors.append(str(exc).replace('\n', ' '))

    final_config = Config(functools.reduce(merge_dict, configs))

    # values from YAML files could have the wrong type, e.g. port: "6379"
    for (conf_name, conf_type, _conf_value) in CONFIG_VARS:
        value = final_config.get(conf_name)
        if conf_type == 'string' or value is None:
            continue
        try:
            final_config[conf_name] = convert_type(value, conf_type)
        except (TypeError, ValueError) as exc:
            errors.append(
                'Bad value for %s: %s' % (conf_name, exc)
            )
            del final_config[conf_name]

    # overload of the final configuration by the environnement variables
    env_overrides = [
        (convert_conf_name(conf_name), conf_name, conf_type)
        for (conf_name, conf_type, _conf_value) in CONFIG_VARS
    ]
    env_overrides.extend(
        (env_name, conf_name, _conf_type(conf_name))
        for (env_name, conf_name) in sorted(COLLECTD_ENV_VARS.items())
    )
    for (env_name, conf_name, conf_type) in env_overrides:
        if env_name not in os.environ:
            continue
        try:
            value = convert_type(os.environ[env_name], conf_type)
        except ValueError as exc:
            errors.append(
                'Bad environ variable %s: %s' % (env_name, exc)
            )
            continue
        final_config[conf_name] = value

    return final_config, errors


def load_config_with_default(paths=None):
    """ Merge the default config with the config from load_config"""
    (final_config, errors) = load_config(paths)
    default_config = load_default_config()
    return default_config.merge(final_config), errors


def config_files(paths):
    """ Return config files present in given paths.

        For each path, if:

        * it is a directory, return all *.conf files inside the directory
        * it is a file, return the path
        * no config file exists for the path, skip it
    """
    files = []
    for path in paths:
        if os.path.isfile(path):
            files.append(path)
        elif os.path.isdir(path):
            files.extend(sorted(glob.glob(os.path.join(path, '*.conf'))))

    return files


def get_interval(config):
    """ Return the polling interval in seconds

        Raise ValueError if the interval isn't a positive number.
    """
    interval = float(config['collectd.interval'])
    if interval <= 0:
        raise ValueError('interval must be positive, got %s' % interval)
    return interval
