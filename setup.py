from setuptools import setup, find_packages

from dnsmasqmgr import VERSION

setup(
    name="dnsmasqmgr",
    description="Hostname, MAC and IP address manager for dnsmasq",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "paho-mqtt>=1.6,<2.0",
        "protobuf>=4.21",
        "systemd-python",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "dnsmasqmgr = dnsmasqmgr.programs.dnsmasqmgr_client:main",
            "dnsmasqmgrd = dnsmasqmgr.programs.dnsmasqmgrd:main",
        ],
    },
    version=VERSION,
)
