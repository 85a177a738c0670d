# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""The interfaces module contains the API interface for the core audit
framework.

These interfaces should help developers attempting to write producers
for new platforms or new checks understand what the framework expects.
"""

# Import the submodules we want people to be able to use without importing them themselves
# checks must come last, the audit context it uses depends upon producers
from pagingaudit.framework.interfaces import layers, producers, checks
