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

r"""
Parse the output of Redis "INFO" command into a list of Metric.

The INFO output looks like::

    # Server
    redis_version:7.2.4
    uptime_in_seconds:67581

    # Commandstats
    cmdstat_get:calls=3,usec=12,usec_per_call=4.00

    # Keyspace
    db0:keys=10,expires=0,avg_ttl=0

Lines starting with "#" open a section. Other lines are "key:value". For
"cmdstat_*" and "db*" keys, the value is itself a list of "name=value"
separated by comma and each pair produces its own Metric.
"""

import logging
from collections import namedtuple


SECTION_DELIMITER = '#'

# Undecodable bytes are replaced, so only the line holding them is affected
ENCODING_ERRORS = 'replace'

# Keys whose value use the "name=value,name=value" format
EXPANDED_KEY_PREFIXES = ('cmdstat_', 'db')


Metric = namedtuple('Metric', ['section', 'prefix', 'key', 'value'])


class InfoLineError(ValueError):
    """ Raised when an INFO line is not in "key:value" form
    """


def scan_info(text):
    r""" Return the list of Metric found in a full INFO output

        text could be str or bytes (decoded as UTF-8, invalid bytes are
        replaced by U+FFFD). Malformed lines are
        skipped, they never stop the scan.

        >>> scan_info('# Server\nrole:master\n')
        [Metric(section='server', prefix='', key='role', value='master')]
    """
    if isinstance(text, bytes):
        text = text.decode('utf-8', ENCODING_ERRORS)

    metrics = []
    section = ''
    for line in text.split('\n'):
        if line.endswith('\r'):
            line = line[:-1]

        if not line:
            continue

        if line.startswith(SECTION_DELIMITER):
            section = line[len(SECTION_DELIMITER):].strip().lower()
            continue

        try:
            metrics.extend(parse_line(section, line))
        except InfoLineError as exc:
            logging.debug('Ignoring INFO line %r: %s', line, exc)

    return metrics


def parse_line(section, line):
    """ Convert one INFO line to a list of Metric

        Raise InfoLineError if the line does not contain a ":"
    """
    # Comment lines aren't an error, but they're not a metric either.
    if line.startswith(SECTION_DELIMITER):
        return []

    parts = line.split(':', 1)
    if len(parts) != 2:
        raise InfoLineError('expected 2 parts, got %d' % len(parts))

    (key, value) = parts

    if key.startswith(EXPANDED_KEY_PREFIXES):
        return parse_sub_values(section, key, value)

    return [Metric(section=section, prefix='', key=key, value=value)]


def parse_sub_values(section, prefix, value):
    """ Expand a "name=value,name=value" value into Metric

        Pairs without "=" are ignored.

        >>> parse_sub_values('keyspace', 'db0', 'keys=1,expires')
        [Metric(section='keyspace', prefix='db0', key='keys', value='1')]
    """
    metrics = []
    for pair in value.split(','):
        parts = pair.split('=', 1)
        if len(parts) != 2:
            continue

        metrics.append(Metric(
            section=section,
            prefix=prefix,
            key=parts[0],
            value=parts[1],
        ))

    return metrics
