from setuptools import setup, find_packages


setup(
    name="tarstream",
    version="0.1",
    packages=find_packages(include=["tarstream", "tarstream.*"]),
    description="Streaming POSIX ustar archive writer with pull-based backpressure.",
    author="vercingetorx",
    python_requires=">=3.8",
    install_requires=[],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "tarstream=tarstream.cli:main",
        ]
    },
)
