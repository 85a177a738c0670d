# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""The official list of format hints that text renderers can rely upon
existing within the framework.

These hints allow a column to indicate how its data should be represented.

Text renderers should attempt to honour all hints provided in this module where possible
"""


class Hex(int):
    """A class to indicate that the integer value should be represented as a
    hexadecimal value."""

