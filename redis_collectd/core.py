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

import argparse
import logging
import logging.config
import signal
import sys
import threading
import time

import yaml

import redis_collectd
import redis_collectd.client
import redis_collectd.collectd
import redis_collectd.config
import redis_collectd.info


# Console handler writes on stderr: stdout is read by collectd.
LOGGER_CONFIG = """
version: 1
disable_existing_loggers: false
formatters:
    simple:
        format: "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    syslog:
        format: "redis-collectd[%(process)d]: %(levelname)s - %(message)s"
handlers:
    # One of the handler will be removed at runtime
    console:
        class: logging.StreamHandler
        formatter: simple
        stream: ext://sys.stderr
    syslog:
        class: logging.handlers.SysLogHandler
        address: /dev/log
        formatter: syslog
    file:
        class: logging.handlers.TimedRotatingFileHandler
        filename: /noexistant/path/to/be/remplaced
        when: midnight
        interval: 1
        backupCount: 7
        formatter: simple
loggers:
    redis: {level: WARNING}
root:
    # Level and handlers will be updated at runtime
    level: INFO
    handlers: console
"""


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Send Redis INFO metrics to collectd exec plugin',
    )
    parser.add_argument('--host', help='redis hostname')
    parser.add_argument('--port', type=int, help='redis port')
    parser.add_argument(
        '--config',
        action='append',
        default=[],
        help='additional configuration file (could be repeated)',
    )
    parser.add_argument(
        '--once',
        default=False,
        action='store_true',
        help='send metrics once then exit',
    )
    parser.add_argument(
        '--print-collectd-config',
        default=False,
        action='store_true',
        help='print the collectd.conf section for this program and exit',
    )
    args = parser.parse_args(argv)

    paths = None
    if args.config:
        paths = redis_collectd.config.PATHS + args.config
    (config, errors) = redis_collectd.config.load_config_with_default(paths)
    if args.host is not None:
        config['redis.host'] = args.host
    if args.port is not None:
        config['redis.port'] = args.port

    if args.print_collectd_config:
        sys.stdout.write(redis_collectd.collectd.collectd_configure(config))
        return 0

    core = Core(config, once=args.once)
    core.config_logger()
    if errors:
        logging.error(
            'Error while loading configuration: %s', '\n'.join(errors)
        )

    return core.run()


class Core:
    """ Hold the connection to Redis and run the polling loop
    """

    def __init__(self, config, once=False, output=None):
        self.config = config
        self.once = once
        self.output = output
        self.client = None
        self.interval = None
        self.is_terminating = threading.Event()

    def config_logger(self):
        output = self.config['logging.output']
        log_level = self.config['logging.level'].upper()

        if output == 'syslog':
            logger_config = yaml.safe_load(LOGGER_CONFIG)
            del logger_config['handlers']['console']
            del logger_config['handlers']['file']
            logger_config['root']['handlers'] = ['syslog']
            logger_config['root']['level'] = log_level
            try:
                logging.config.dictConfig(logger_config)
            except ValueError:
                # Probably /dev/log that does not exists, for example under
                # docker container
                output = 'console'

        if output == 'file':
            logger_config = yaml.safe_load(LOGGER_CONFIG)
            del logger_config['handlers']['console']
            del logger_config['handlers']['syslog']
            logger_config['root']['handlers'] = ['file']
            logger_config['root']['level'] = log_level
            logger_config['handlers']['file']['filename'] = self.config[
                'logging.output_file'
            ]
            try:
                logging.config.dictConfig(logger_config)
            except ValueError:
                output = 'console'

        if output not in ('syslog', 'file'):
            logger_config = yaml.safe_load(LOGGER_CONFIG)
            del logger_config['handlers']['syslog']
            del logger_config['handlers']['file']
            logger_config['root']['handlers'] = ['console']
            logger_config['root']['level'] = log_level
            logging.config.dictConfig(logger_config)

    def setup_signal(self):
        """ Make SIGTERM and SIGINT stop the polling loop
        """
        def handler(_signum, _frame):
            self.is_terminating.set()

        signal.signal(signal.SIGTERM, handler)
        signal.signal(signal.SIGINT, handler)

    def connect(self):
        self.client = redis_collectd.client.connect(
            self.config['redis.host'],
            self.config['redis.port'],
            password=self.config['redis.password'],
            socket_timeout=self.config['redis.socket_timeout'],
        )

    def run(self):
        """ Run the polling loop. Return the process exit status
        """
        try:
            self.interval = redis_collectd.config.get_interval(self.config)
        except (TypeError, ValueError) as exc:
            logging.error('error parsing interval: %s', exc)
            return 1

        try:
            self.connect()
        except redis_collectd.client.RedisConnectError as exc:
            logging.error('error connecting to redis: %s', exc)
            return 1

        logging.info(
            'redis-collectd starting... (version=%s, interval=%ss)',
            redis_collectd.__version__,
            self.interval,
        )
        self.setup_signal()

        while not self.is_terminating.is_set():
            try:
                self.run_once()
            except redis_collectd.client.FetchError as exc:
                logging.error('error fetching metrics: %s', exc)
                return 1

            if self.once:
                break

            self.is_terminating.wait(self.interval)

        logging.info('redis-collectd stopped')
        return 0

    def run_once(self):
        """ Fetch INFO, parse it and send metrics to collectd

            Return the number of PUTVAL lines written
        """
        if self.interval is None:
            self.interval = redis_collectd.config.get_interval(self.config)

        now = time.time()
        blob = redis_collectd.client.fetch_info(self.client)
        metrics = redis_collectd.info.scan_info(blob)
        return redis_collectd.collectd.emit_metrics(
            metrics, self.interval, now, self.output,
        )
