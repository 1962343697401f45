#!/usr/bin/env python
from setuptools import setup

name = 'ssmclean'
version = '1.0.0'

setup(
    name=name,
    version=version,
    description='Keep only the highest version of an AWS SSM document and make it the default',
    license='Apache2',
    classifiers=[
        'Intended Audience :: Developers',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: Apache Software License',
    ],
    py_modules=['ssmclean'],
    install_requires=[
        'boto3>=1.1.1',
    ],
    extras_require={
        'test': ['pytest>=7.0']
    },
    entry_points={
        'console_scripts': [
            'ssmclean = ssmclean:main'
        ]
    },
)
