from setuptools import find_packages
from setuptools import setup

version = '0.4.0'

install_requires = [
    'cryptography>=43.0.0',
    'josepy>=1.13.0',
    'pyrfc3339',
    'pytz>=2019.3',
    'requests>=2.20.0',
]

test_extras = [
    'pytest',
    'pytest-xdist',
]

setup(
    name='acmeclient',
    version=version,
    description='Client for the draft ACME protocol (new-reg/new-authz/new-cert)',
    license='Apache License 2.0',
    python_requires='>=3.9',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: Apache Software License',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Programming Language :: Python :: 3.13',
        'Topic :: Internet :: WWW/HTTP',
        'Topic :: Security',
    ],

    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    include_package_data=True,
    install_requires=install_requires,
    extras_require={
        'test': test_extras,
    },
    entry_points={
        'console_scripts': [
            'acmeclient = acmeclient.cli:main',
        ],
    },
)
