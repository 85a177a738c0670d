# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""Validates that every part of an address range carries the required
access attributes."""
import logging
from typing import Optional

from pagingaudit.framework import constants, exceptions, interfaces
from pagingaudit.framework.layers import flat

vollog = logging.getLogger(__name__)


def attributes_match(
    attributes: int, required: int, match: constants.MatchMode = constants.MatchMode.ALL
) -> bool:
    """Compares a region's attributes with the required attributes.

    Under MatchMode.ANY a single required bit is enough, under
    MatchMode.ALL every required bit must be present.
    """
    if match == constants.MatchMode.ANY:
        return (attributes & required) != 0
    return (attributes & required) == required


def validate_region(
    table: flat.RangeTable,
    address: int,
    length: int,
    required: int,
    match: constants.MatchMode = constants.MatchMode.ALL,
    allow_unmapped: bool = False,
    log_mismatch: bool = False,
    sink: Optional["interfaces.checks.AuditVerdict"] = None,
) -> bool:
    """Checks the flat table for the region and validates the attributes
    match the required attributes.

    The whole region is always scanned, so that every offending sub-range
    is reported, unless the table cannot be queried any further.

    Args:
        table: The populated flat range table
        address: Start address of the region
        length: Length of the region
        required: The required attributes of the region
        match: Whether any or all of the required attributes must be present
        allow_unmapped: If True, unmapped sub-ranges are excepted from the check
        log_mismatch: If True, log (and record in sink) each offending sub-range
        sink: An optional verdict to record diagnostics against

    Returns:
        True if the region has the required attributes
    """
    attributes_ok = True
    stalled = 0

    while length > 0:
        try:
            result = flat.query(table, address, length)
        except exceptions.MalformedTableException:
            raise
        except exceptions.InvalidAddressException as excp:
            vollog.info(
                f"Failed to get attributes for Address: 0x{address:x}, Length: 0x{length:x}. {excp}"
            )
            attributes_ok = False
            break

        if result.mapped:
            if not attributes_match(result.attributes, required, match):
                if log_mismatch:
                    qualifier = (
                        "any of" if match == constants.MatchMode.ANY else "all of"
                    )
                    vollog.error(
                        "Region 0x{:x}-0x{:x} does not have {} the following attribute(s): {} (found {})".format(
                            address,
                            address + result.covered,
                            qualifier,
                            constants.Attribute.describe(required),
                            constants.Attribute.describe(result.attributes),
                        )
                    )
                    if sink is not None:
                        sink.log_mismatch(
                            address,
                            address + result.covered,
                            required,
                            match,
                            result.attributes,
                        )
                attributes_ok = False
        elif not allow_unmapped:
            if log_mismatch:
                vollog.error(
                    f"Region 0x{address:x}-0x{address + result.covered:x} is not mapped"
                )
                if sink is not None:
                    sink.record(address, address + result.covered, "not mapped")
            attributes_ok = False

        if result.covered == 0:
            stalled += 1
            if stalled >= 2:
                vollog.info(
                    f"Unexpected error occurred when parsing {table.name} for 0x{address:x}-0x{address + length:x}!"
                )
                attributes_ok = False
                break
            continue
        stalled = 0

        if address + result.covered > constants.MAX_ADDRESS:
            break
        address += result.covered
        length -= result.covered

    return attributes_ok
