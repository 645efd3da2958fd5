from setuptools import setup, find_packages
import os

# Read the version from __init__.py
def get_version():
    version_file = os.path.join(os.path.dirname(__file__), "bms_core", "__init__.py")
    with open(version_file, "r") as f:
        for line in f:
            if line.startswith("__version__"):
                delim = '"' if '"' in line else "'"
                return line.split(delim)[1]
    raise RuntimeError("Unable to find version string.")

setup(
    name="bms-core",
    version=get_version(),
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy",
        "pandas",
    ],
    extras_require={
        "test": ["pytest", "pytest-cov"],
    },
    entry_points={
        "console_scripts": [
            "bmsreplay=bms_core.replay:main",
        ],
    },
    author="Eduard Moser",
    author_email="eduard.moser@gmx.de",
    description="Battery management estimation and control loop",
    long_description=open(os.path.join(os.path.dirname(__file__), "README.md")).read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: BSD License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.8",
)
