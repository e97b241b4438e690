"""HTTP edge for the disbursement kernel (FastAPI)."""

from disbursement_api.app import create_app

__all__ = ["create_app"]
