# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""Paging Audit framework."""
# Check the python version to ensure it's suitable
import sys

required_python_version = (3, 8, 0)
if sys.version_info < required_python_version:
    raise RuntimeError(
        "Paging audit framework requires python version {}.{}.{} or greater".format(
            *required_python_version
        )
    )

import importlib
import inspect
import logging
import os
import traceback
from typing import Dict, Generator, List, Tuple, Type, TypeVar

from pagingaudit.framework import constants, interfaces


# ##
#
# SemVer version scheme
#
# Increment the:
#
#     MAJOR version when you make incompatible API changes,
#     MINOR version when you add functionality in a backwards compatible manner, and
#     PATCH version when you make backwards compatible bug fixes.


def interface_version() -> Tuple[int, int, int]:
    """Provides the so version number of the library."""
    return constants.VERSION_MAJOR, constants.VERSION_MINOR, constants.VERSION_PATCH


vollog = logging.getLogger(__name__)


def require_interface_version(*args) -> None:
    """Checks the required version of a check."""
    if len(args):
        if args[0] != interface_version()[0]:
            raise RuntimeError(
                "Framework interface version {} is incompatible with required version {}".format(
                    interface_version()[0], args[0]
                )
            )
        if len(args) > 1:
            if args[1] > interface_version()[1]:
                raise RuntimeError(
                    "Framework interface version {} is an older revision than the required version {}".format(
                        ".".join([str(x) for x in interface_version()[0:2]]),
                        ".".join([str(x) for x in args[0:2]]),
                    )
                )


T = TypeVar("T")


def class_subclasses(cls: Type[T]) -> Generator[Type[T], None, None]:
    """Returns all the (recursive) subclasses of a given class."""
    if not inspect.isclass(cls):
        raise TypeError(f"class_subclasses parameter not a valid class: {cls}")
    for clazz in cls.__subclasses__():
        if not inspect.isabstract(clazz):
            yield clazz
        for return_value in class_subclasses(clazz):
            yield return_value


def import_files(base_module, ignore_errors: bool = False) -> List[str]:
    """Imports all checks present under the checks module namespace."""
    failures = []
    if not isinstance(base_module.__path__, list):
        raise TypeError("[base_module].__path__ must be a list of paths")
    vollog.log(
        constants.LOGLEVEL_VVVV,
        f"Importing from the following paths: {', '.join(base_module.__path__)}",
    )
    for path in base_module.__path__:
        for root, _, files in os.walk(path, followlinks=True):
            if root.endswith("__pycache__"):
                continue
            for filename in files:
                if _filter_files(filename):
                    modpath = os.path.join(
                        root[len(path) + len(os.path.sep) :],
                        filename[: filename.rfind(".")],
                    )
                    submodule = modpath.replace(os.path.sep, ".")
                    failures += import_file(
                        base_module.__name__ + "." + submodule,
                        os.path.join(root, filename),
                        ignore_errors,
                    )

    return failures


def _filter_files(filename: str):
    """Ensures that a filename traversed is an importable python file"""
    return (
        filename.endswith(".py")
        or filename.endswith(".pyc")
        or filename.endswith(".pyo")
    ) and not filename.startswith("__")


def import_file(module: str, path: str, ignore_errors: bool = False) -> List[str]:
    """Imports a python file based on an existing module, a submodule and a filepath for error messages

    Args
        module: Module name to be imported
        path: File to be imported from (used for error messages)

    Returns
        List of modules that may have failed to import

    """
    failures = []
    if module not in sys.modules:
        try:
            importlib.import_module(module)
        except ImportError as e:
            vollog.debug(
                "".join(
                    traceback.TracebackException.from_exception(e).format(chain=True)
                )
            )
            vollog.debug(
                "Failed to import module {} based on file: {}".format(module, path)
            )
            failures.append(module)
            if not ignore_errors:
                raise
    return failures


def list_checks() -> Dict[str, Type[interfaces.checks.CheckInterface]]:
    """Returns every available check keyed by its class name, in the order they run."""
    check_list = {}
    for check in sorted(
        class_subclasses(interfaces.checks.CheckInterface), key=lambda x: x.priority
    ):
        check_list[check.__name__] = check
    return check_list
