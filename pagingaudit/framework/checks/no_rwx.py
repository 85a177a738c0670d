# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
import logging

from pagingaudit.framework import constants, exemptions, interfaces

vollog = logging.getLogger(__name__)


class NoReadWriteExecute(interfaces.checks.CheckInterface):
    """Verifies that no mapped range is readable, writable and executable
    unless an exemption covers it."""

    _required_framework_version = (1, 0, 0)
    _version = (1, 0, 0)

    test_id = "Security.Misc.NoReadWriteExecute"
    description = "No pages are readable, writable, and executable"
    priority = 10

    def _check(self, verdict: interfaces.checks.AuditVerdict) -> None:
        special_regions = self.context.special_regions()
        non_protected_images = self.context.non_protected_images()
        table = self.context.page_table()
        memory_space_map = self.context.memory_space_map()

        allowed = exemptions.ExemptionSets(
            special_regions, non_protected_images, memory_space_map
        )
        if not allowed.populated:
            vollog.warning("No exemption sources available, every RWX range will fail")

        for entry in table:
            if entry.readable and entry.writable and entry.executable:
                if not allowed.is_rwx_permitted(entry.base, entry.length):
                    verdict.fail(entry.base, entry.end, "is Read/Write/Execute")
                else:
                    vollog.log(
                        constants.LOGLEVEL_V,
                        f"Allowing RWX range 0x{entry.base:x}-0x{entry.end:x}",
                    )
