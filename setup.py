from setuptools import setup, find_packages

setup(
    name="mcastchat",
    version="1.0.0",
    description="Text chat over a single IPv4 multicast group",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "colorama",
        "psutil>=5.9.3",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "mcastchat-client = mcastchat.client:main",
            "mcastchat-generator = mcastchat.generator:main",
        ],
    },
    python_requires=">=3.10",
)
