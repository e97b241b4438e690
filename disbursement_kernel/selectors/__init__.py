from disbursement_kernel.selectors.approval_selector import ApprovalSelector
from disbursement_kernel.selectors.base import BaseSelector
from disbursement_kernel.selectors.charity_selector import CharitySelector

__all__ = ["ApprovalSelector", "BaseSelector", "CharitySelector"]
