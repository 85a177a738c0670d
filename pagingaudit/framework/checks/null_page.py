# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
import logging

from pagingaudit.framework import constants, interfaces, validator

vollog = logging.getLogger(__name__)


class NullPageIsRP(interfaces.checks.CheckInterface):
    """Verifies that the page at address zero is read protected or not mapped."""

    _required_framework_version = (1, 0, 0)
    _version = (1, 0, 0)

    test_id = "Security.Misc.NullPageIsRp"
    description = "NULL page is EFI_MEMORY_RP"
    priority = 40

    def _check(self, verdict: interfaces.checks.AuditVerdict) -> None:
        verdict.passed = validator.validate_region(
            self.context.page_table(),
            0,
            self.context.page_size,
            constants.Attribute.RP,
            constants.MatchMode.ANY,
            allow_unmapped=True,
            log_mismatch=True,
            sink=verdict,
        )
