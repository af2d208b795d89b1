"""Dependency injection for FastAPI endpoints"""

from fastapi import Request

from hcbs_gateway.domain.transformer import RemittanceTransformer


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_transformer() -> RemittanceTransformer:
    """Provide a remittance transformer instance"""
    return RemittanceTransformer()
