#!/usr/bin/python

from setuptools import find_packages, setup

import redis_collectd


setup(
    name="redis-collectd",
    version=redis_collectd.__version__,
    license='Apache-2.0',
    description="Send Redis INFO metrics to collectd exec plugin",
    author='Bleemeo',
    packages=find_packages(),
    package_data={
        'redis_collectd': ['templates/*'],
    },
    install_requires=[
        'jinja2',
        'pyyaml',
        'redis >= 4.0.0',
    ],
    extras_require={
        'test': ['pytest'],
    },
    scripts=(
        'bin/redis-collectd',
    ),
)
