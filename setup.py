#!/usr/bin/env python3

# Copyright 2026 The Ionsolar developers.
#
# This file is part of Ionsolar. It is subject to the license terms in the file
# LICENSE.rst found in the top-level directory of this distribution.

from setuptools import setup


def status_msgs(*msgs):
    print()
    for msg in msgs:
        print(msg)
    print()


def run_setup(packages):
    # populate the version_info dictionary with values stored in the version file
    version_info = {}
    with open('ionsolar/_version.py', 'r') as f:
        exec(f.read(), {}, version_info)

    setup(
        name = 'ionsolar',
        version = version_info['__version__'],
        description = 'Drift-diffusion simulation of perovskite solar cells '
                      'with mobile ion vacancies',
        packages = packages,
        python_requires = '>=3.7',
        install_requires = ['numpy', 'scipy'],
        extras_require = {'test': ['pytest']},
        classifiers = [
            'Intended Audience :: Science/Research',
            'Programming Language :: Python :: 3',
        ],
    )


packages = ['ionsolar']
run_setup(packages)
status_msgs("Done")
