"""Setup configuration for the Audience Q&A channel layer."""

from setuptools import setup, find_packages

setup(
    name="audience-qa-channels",
    version="0.1.0",
    description=(
        "Idempotent multi-room messaging client on top of a reliable "
        "pub/sub transport"
    ),
    author="DS-G1-SMS Team",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "protobuf>=4.25.0",
        "websockets>=12.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "qa-client=qa_client.main:main",
            "qa-relay=qa_relay.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
