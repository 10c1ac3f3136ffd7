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

import logging

import redis

import redis_collectd.info


# INFO may contain paths (executable, config_file) in any encoding
ENCODING_ERRORS = redis_collectd.info.ENCODING_ERRORS


class RedisConnectError(Exception):
    """ Raised when the Redis server can not be reached or does not answer
        PING
    """


class FetchError(Exception):
    """ Raised when the INFO command failed
    """


def _raw_info(response, **_options):
    """ Keep INFO response as text. Default redis-py callback parses it
        into a dict, losing the section headers.
    """
    return response


def connect(host, port, password=None, socket_timeout=None):
    """ Return a redis.Redis client connected to host:port

        The server must answer PING, else RedisConnectError is raised.
    """
    address = '%s:%d' % (host, port)

    client = redis.Redis(
        host=host,
        port=port,
        password=password,
        socket_timeout=socket_timeout,
        decode_responses=True,
        encoding_errors=ENCODING_ERRORS,
    )
    client.set_response_callback('INFO', _raw_info)

    try:
        pong = client.ping()
    except redis.exceptions.RedisError as exc:
        raise RedisConnectError(
            'failed to connect to %s: %s' % (address, exc)
        ) from exc

    if not pong:
        raise RedisConnectError(
            'expected PONG, got %r from %s' % (pong, address)
        )

    logging.info('connected to Redis server: %s', address)
    return client


def fetch_info(client, section='all'):
    """ Return the output of "INFO <section>" as text
    """
    try:
        blob = client.execute_command('INFO', section.upper())
    except redis.exceptions.RedisError as exc:
        raise FetchError('INFO command failed: %s' % exc) from exc

    if isinstance(blob, bytes):
        blob = blob.decode('utf-8', ENCODING_ERRORS)

    return blob
