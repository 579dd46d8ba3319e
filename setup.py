# setup.py
from setuptools import setup, find_namespace_packages

setup(
    name="cpamm",
    version="0.1.0",
    packages=find_namespace_packages(include=["cpamm", "cpamm.*"]),
    python_requires=">=3.10",
    install_requires=[
        "msgpack",            # pool state checkpoints
        "cryptography",       # address derivation
        "prometheus_client",  # metrics
    ],
    extras_require={
        "test": ["pytest"],
    },
)
