# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#

import os

import setuptools

here = os.path.abspath(os.path.dirname(__file__))


def get_requires(filename):
    requirements = []
    with open(os.path.join(here, filename), "r", encoding="utf-8") as fh:
        for line in fh.readlines():
            stripped_line = line.strip()
            if stripped_line == "" or stripped_line.startswith(("#", "-r")):
                continue
            requirements.append(stripped_line)
    return requirements


def get_version():
    version = {}
    with open(
        os.path.join(here, "pagingaudit", "framework", "constants", "_version.py"),
        "r",
        encoding="utf-8",
    ) as fh:
        exec(fh.read(), version)
    return version["PACKAGE_VERSION"]


setuptools.setup(
    name="pagingaudit",
    version=get_version(),
    description="Audits a platform's memory translation configuration against security invariants",
    license="VSL",
    python_requires=">=3.8.0",
    packages=setuptools.find_packages(include=["pagingaudit", "pagingaudit.*"]),
    package_data={"pagingaudit.schemas": ["*.json"]},
    include_package_data=True,
    entry_points={
        "console_scripts": [
            "pagingaudit = pagingaudit.cli:main",
        ],
    },
    install_requires=get_requires("requirements.txt"),
    extras_require={
        "dev": get_requires("requirements-dev.txt"),
        "test": get_requires("requirements-dev.txt"),
    },
)
