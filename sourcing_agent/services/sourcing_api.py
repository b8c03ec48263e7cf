"""Sourcing backend client.

Two services sit behind it: the sourcing GraphQL API (projects, milestones,
suppliers, publication) and the supplier-recommendation REST model.
Both take a bearer token from settings.

Every call returns the decoded JSON body. Transport failures, non-2xx
responses and GraphQL ``errors`` all surface as ``SourcingApiError``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

import httpx

from sourcing_agent.config import settings
from sourcing_agent.models.project import ProjectMilestone, SelectedSupplier

logger = logging.getLogger(__name__)

_CREATE_PROJECT = """
mutation CreateProject($input: CreateProjectInput!) {
  createProject(input: $input) {
    projectId
    projectStatus
    engagementId
  }
}
"""

_UPSERT_ENGAGEMENT_INFO = """
mutation UpsertEngagementInfo($input: EngagementInfoInput!) {
  upsertEngagementInfo(input: $input) {
    engagementMilestoneResponse {
      engagementId
      engagementMilestones {
        title
        deliveryDate
      }
    }
  }
}
"""

_UPSERT_PROJECT_SUPPLIERS = """
mutation UpsertProjectSuppliers($input: ProjectSuppliersInput!) {
  upsertProjectSuppliers(input: $input) {
    projectId
  }
}
"""

_PUBLISH_PROJECT = """
mutation PublishProject($input: PublishProjectInput!) {
  publishProject(input: $input) {
    projectId
  }
}
"""


class SourcingApiError(Exception):
    """A backend call failed; ``status_code`` is set when the server answered."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _bearer(token: str) -> str:
    if token.lower().startswith("bearer "):
        return f"Bearer {token[7:].strip()}"
    return f"Bearer {token}"


def format_timestamp(value: datetime) -> str:
    """``2025-10-16T18:30:00.000Z``, the timestamp shape the GraphQL API expects."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def _format_day(value: date) -> str:
    return f"{value.isoformat()}T00:00:00.000Z"


class SourcingApiClient:
    def __init__(
        self,
        graphql_endpoint: str | None = None,
        graphql_token: str | None = None,
        supplier_api_url: str | None = None,
        supplier_api_token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.graphql_endpoint = graphql_endpoint if graphql_endpoint is not None else settings.graphql_endpoint
        self.graphql_token = graphql_token if graphql_token is not None else settings.graphql_bearer_token
        self.supplier_api_url = supplier_api_url if supplier_api_url is not None else settings.supplier_api_url
        self.supplier_api_token = (
            supplier_api_token if supplier_api_token is not None else settings.supplier_api_token
        )
        self._client = client
        self._owns_client = client is None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=settings.http_timeout_seconds,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _post(self, url: str, token: str, payload: dict[str, Any], service: str) -> dict[str, Any]:
        if not url:
            raise SourcingApiError(f"{service} endpoint URL is not configured")
        if not token:
            raise SourcingApiError(f"{service} bearer token is not configured")

        logger.info("POST %s request to %s", service, url)
        try:
            response = await self._http().post(
                url,
                json=payload,
                headers={"Authorization": _bearer(token), "Accept": "application/json"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "%s HTTP error %s: %s", service, exc.response.status_code, exc.response.text
            )
            raise SourcingApiError(
                f"{service} request failed with status {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("%s request failed: %s", service, exc)
            raise SourcingApiError(f"{service} request failed: {exc}") from exc
        except ValueError as exc:
            raise SourcingApiError(f"{service} returned a non-JSON response") from exc

        if not isinstance(data, dict):
            raise SourcingApiError(f"{service} returned an unexpected response shape")
        return data

    async def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run a GraphQL operation and return the full response body."""
        data = await self._post(
            self.graphql_endpoint,
            self.graphql_token,
            {"query": query, "variables": variables or {}},
            "GraphQL",
        )
        errors = data.get("errors")
        if errors:
            messages = "; ".join(
                str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors
            )
            raise SourcingApiError(f"GraphQL errors: {messages}")
        return data

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create_project(
        self,
        *,
        title: str,
        description: str,
        email: str,
        budget: Decimal,
        start_date: datetime,
        end_date: datetime,
        engagement_id: str,
    ) -> dict[str, Any]:
        variables = {
            "input": {
                "projectTitle": title,
                "projectDescription": description,
                "emailId": email,
                "approxTotalBudget": float(budget),
                "engagementStartDate": format_timestamp(start_date),
                "engagementEndDate": format_timestamp(end_date),
                "engagementId": engagement_id,
            }
        }
        return await self.execute(_CREATE_PROJECT, variables)

    async def upsert_milestones(
        self, engagement_id: str, milestones: list[ProjectMilestone]
    ) -> dict[str, Any]:
        variables = {
            "input": {
                "engagementId": engagement_id,
                "engagementMilestones": [
                    {"title": m.title, "deliveryDate": _format_day(m.delivery_date)} for m in milestones
                ],
            }
        }
        return await self.execute(_UPSERT_ENGAGEMENT_INFO, variables)

    async def get_supplier_recommendations(self, category: str) -> dict[str, Any]:
        payload = {
            "modelsToRun": ["SupplierRecommendation"],
            "inputList": [[category]],
            "extras": {"is_sspa": "False"},
        }
        return await self._post(
            self.supplier_api_url, self.supplier_api_token, payload, "Supplier recommendation"
        )

    async def upsert_project_suppliers(
        self, project_id: str, suppliers: list[SelectedSupplier]
    ) -> dict[str, Any]:
        variables = {
            "input": {
                "projectId": project_id,
                "suppliersList": [
                    {"vendorNumber": s.vendor_number, "companyCode": s.company_code} for s in suppliers
                ],
            }
        }
        return await self.execute(_UPSERT_PROJECT_SUPPLIERS, variables)

    async def publish_project(
        self,
        project_id: str,
        title: str,
        response_start: datetime,
        response_due: datetime,
        award_target: date,
    ) -> dict[str, Any]:
        variables = {
            "input": {
                "projectId": project_id,
                "projectTitle": title,
                "responseStartDate": format_timestamp(response_start),
                "responseDueDate": format_timestamp(response_due),
                "awardTargetDate": _format_day(award_target),
            }
        }
        return await self.execute(_PUBLISH_PROJECT, variables)
