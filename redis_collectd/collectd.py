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
Output metrics using collectd "exec" plugin text protocol.

Each metric is written on stdout as::

    PUTVAL redis/<section>/<key> interval=<seconds> <timestamp>:<value>

See collectd-exec(5).
"""

import logging
import math
import sys

import jinja2


IDENTIFIER_PREFIX = 'redis'

INF_TEXTS = ('inf', 'infinity')


def coerce_value(value_text):
    """ Convert the raw INFO value to a float

        Return None if the value is not a number (e.g. "master" or
        "jemalloc-5.3.0").
    """
    if value_text != value_text.strip() or '_' in value_text:
        return None

    try:
        value = float(value_text)
    except ValueError:
        return None

    # Out of range, e.g. "1e400"
    if math.isinf(value) and value_text.lstrip('+-').lower() not in INF_TEXTS:
        return None

    return value


def metric_identifier(metric):
    """ Return collectd identifier for given metric

        The identifier is "redis/<section>/<key>", or
        "redis/<section>/<prefix>/<key>" for expanded values like
        "cmdstat_get: calls=3".
    """
    if metric.prefix:
        name = '%s/%s' % (metric.prefix, metric.key)
    else:
        name = metric.key

    return '%s/%s/%s' % (IDENTIFIER_PREFIX, metric.section, name)


def format_putval(metric, value, interval, timestamp):
    return 'PUTVAL %s interval=%f %d:%f' % (
        metric_identifier(metric),
        interval,
        timestamp,
        value,
    )


def emit_metrics(metrics, interval, timestamp, output=None):
    """ Write one PUTVAL line per numeric metric

        Metric with non-numeric value are skipped. Return the number of
        lines written.
    """
    if output is None:
        output = sys.stdout

    count = 0
    for metric in metrics:
        value = coerce_value(metric.value)
        if value is None:
            continue

        output.write(format_putval(metric, value, interval, timestamp) + '\n')
        count += 1

    output.flush()
    logging.debug('Sent %d metrics out of %d to collectd', count, len(metrics))
    return count


def collectd_configure(config, executable=None):
    """ Return the section to add in collectd.conf to run this program
        with collectd "exec" plugin
    """
    env = jinja2.Environment(
        loader=jinja2.PackageLoader('redis_collectd', 'templates'),
        keep_trailing_newline=True,
    )
    template = env.get_template('collectd.conf')

    if executable is None:
        executable = config['collectd.executable']

    return template.render(
        user=config['collectd.user'],
        executable=executable,
        host=config['redis.host'],
        port=config['redis.port'],
    )
