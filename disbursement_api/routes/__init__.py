from disbursement_api.routes import approvals, charities, milestones

__all__ = ["approvals", "charities", "milestones"]
