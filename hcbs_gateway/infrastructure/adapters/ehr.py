"""EHR integration: client demographics, delivered services and authorizations"""

from dataclasses import replace
from datetime import date
from typing import Any, Dict, List, Optional

from hcbs_gateway.domain.models import EHRIntegrationConfig, IntegrationConfig, IntegrationResponse, RequestOptions
from hcbs_gateway.infrastructure.adapters.base import IntegrationAdapter
from hcbs_gateway.utils.date_utils import parse_date


DEFAULT_ENDPOINTS = {
    "getClient": "clients",
    "getServices": "services",
    "getAuthorizations": "authorizations",
}


def _expiration(authorization: Dict[str, Any]) -> Optional[date]:
    # FHIR Coverage carries it as period.end
    value = authorization.get("expirationDate") or (authorization.get("period") or {}).get("end")
    return parse_date(value)


def is_active_authorization(authorization: Dict[str, Any], today: date) -> bool:
    if str(authorization.get("status", "")).lower() != "active":
        return False
    expires = _expiration(authorization)
    return expires is None or expires > today


class EHRAdapter(IntegrationAdapter):
    def __init__(self, config: IntegrationConfig, ehr_config: EHRIntegrationConfig, **kwargs: Any):
        endpoints = {**DEFAULT_ENDPOINTS, **config.endpoints}
        super().__init__(replace(config, endpoints=endpoints), **kwargs)
        self.ehr_config = ehr_config

    async def get_client(self, client_id: str, options: Optional[RequestOptions] = None) -> IntegrationResponse:
        return await self.execute("getClient", {"clientId": client_id}, options)

    async def get_services(
        self,
        client_id: str,
        start_date: str,
        end_date: str,
        filters: Optional[Dict[str, Any]] = None,
        options: Optional[RequestOptions] = None,
    ) -> IntegrationResponse:
        data = {**(filters or {}), "clientId": client_id, "startDate": start_date, "endDate": end_date}
        return await self.execute("getServices", data, options)

    async def get_authorizations(
        self,
        client_id: str,
        active_only: bool = False,
        options: Optional[RequestOptions] = None,
        today: Optional[date] = None,
    ) -> IntegrationResponse:
        """
        Authorizations on file for a client.

        With active_only, keeps entries whose status is active and whose
        expiration date, when present, is after today.
        """
        response = await self.execute("getAuthorizations", {"clientId": client_id}, options)
        if not (active_only and response.success and isinstance(response.data, list)):
            return response

        today = today or date.today()
        authorizations: List[Dict[str, Any]] = [
            item for item in response.data if isinstance(item, dict) and is_active_authorization(item, today)
        ]
        response.data = authorizations
        response.metadata["filtered"] = "active_only"
        return response
