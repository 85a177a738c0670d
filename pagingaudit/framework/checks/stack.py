# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
import logging

from pagingaudit.framework import constants, interfaces, validator
from pagingaudit.framework.layers import flat

vollog = logging.getLogger(__name__)


class BspStackIsXPAndHasGuardPage(interfaces.checks.CheckInterface):
    """Verifies that the boot processor stack is non-executable and that its
    lowest page is an inaccessible guard page."""

    _required_framework_version = (1, 0, 0)
    _version = (1, 0, 0)

    test_id = "Security.Misc.BspStackIsXpAndHasGuardPage"
    description = "BSP stack is EFI_MEMORY_XP and has EFI_MEMORY_RP guard page"
    priority = 70

    def _check(self, verdict: interfaces.checks.AuditVerdict) -> None:
        table = self.context.page_table()
        stack = self.context.boot_stack()

        if stack is None:
            vollog.warning("Unable to locate the BSP stack, skipping")
            return

        page_size = self.context.page_size
        stack_base = (stack.base // page_size) * page_size
        stack_length = flat.size_to_pages(stack.length) * page_size
        vollog.info(
            f"BSP stack located at 0x{stack_base:x} - 0x{stack_base + stack_length:x}"
        )

        if not validator.validate_region(
            table,
            stack_base,
            page_size,
            constants.Attribute.RP,
            constants.MatchMode.ANY,
            allow_unmapped=True,
        ):
            verdict.fail(
                stack_base,
                stack_base + page_size,
                "does not have an EFI_MEMORY_RP page to catch overflow",
            )

        if not validator.validate_region(
            table,
            stack_base + page_size,
            max(stack_length - page_size, 0),
            constants.Attribute.XP,
            constants.MatchMode.ANY,
        ):
            verdict.fail(
                stack_base + page_size,
                stack_base + stack_length,
                "is not EFI_MEMORY_XP",
            )
