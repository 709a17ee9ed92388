import os
from setuptools import setup, find_packages


# Load package info, without importing the package
basedir = os.path.dirname(os.path.abspath(__file__))
package_info_path = os.path.join(basedir, "sapi", "package_info.py")
package_info = {}
with open(package_info_path, encoding='utf-8') as f:
    exec(f.read(), package_info)

python_requires = '>=3.9'

# Package requirements, minimal pinning
install_requires = ['requests>=2.25,<3', 'urllib3>=2,<3',
                    'pydantic>=2,<3', 'homebase>=1.0,<2',
                    'python-dateutil>=2.7,<3', 'orjson>=3.10',
                    ]

# Package extras requirements
extras_require = {
    'test': ['requests_mock', 'parameterized', 'coverage'],
}

# Packages provided. Do not include tests.
packages = find_packages(include=['sapi', 'sapi.*'])

classifiers = [
    'License :: OSI Approved :: Apache Software License',
    'Operating System :: OS Independent',
    'Programming Language :: Python :: 3',
    'Programming Language :: Python :: 3.9',
    'Programming Language :: Python :: 3.10',
    'Programming Language :: Python :: 3.11',
    'Programming Language :: Python :: 3.12',
    'Programming Language :: Python :: 3.13',
]

setup(
    name=package_info['__packagename__'],
    version=package_info['__version__'],
    author=package_info['__author__'],
    description=package_info['__description__'],
    long_description=open('README.rst', encoding='utf-8').read(),
    url=package_info['__url__'],
    license=package_info['__license__'],
    packages=packages,
    python_requires=python_requires,
    install_requires=install_requires,
    extras_require=extras_require,
    classifiers=classifiers,
    zip_safe=False,
)
