"""Client for the external catalog index (Pyxis GraphQL API)."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from . import global_config as g
from .errors import CatalogError
from .utils.deadline import Deadline

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 60.0

# end_of_life is a string; filtering on null yields only active platform versions.
FIND_OPERATOR_INDICES_QUERY = """
query FindOperatorIndices($organization: String!) {
  find_operator_indices(
    filter: {and: [{organization: {eq: $organization}}, {end_of_life: {eq: null}}]}
  ) {
    data {
      ocp_version
      organization
      end_of_life
    }
    error {
      status
      detail
    }
  }
}
"""


@dataclass(frozen=True)
class OperatorIndex:
    ocp_version: str
    organization: str
    end_of_life: str | None = None


class CatalogClient:
    """Single-call GraphQL client for operator index versions."""

    def __init__(
        self,
        host: str = g.DEFAULT_PYXIS_HOST,
        session: requests.Session | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self.host = host
        self.session = session or requests.Session()
        self.timeout_s = timeout_s

    @property
    def graphql_url(self) -> str:
        return f"https://{self.host}/graphql/"

    def find_operator_indices(
        self, organization: str, *, deadline: Deadline | None = None
    ) -> list[OperatorIndex]:
        """Return the active operator index versions published for an organization.

        Args:
            organization: Catalog organization, e.g. "certified-operators".
            deadline: Pass deadline bounding the HTTP timeout.

        Returns:
            OperatorIndex entries whose end of life is unset.

        Raises:
            CatalogError: On transport errors, HTTP errors or GraphQL errors.
        """
        deadline = deadline or Deadline.none()
        deadline.check(f"querying {organization} catalogs")
        payload = {
            "query": FIND_OPERATOR_INDICES_QUERY,
            "variables": {"organization": organization},
        }
        try:
            response = self.session.post(
                self.graphql_url, json=payload, timeout=deadline.timeout(self.timeout_s)
            )
            response.raise_for_status()
            document = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise CatalogError(
                f"error while executing remote query for {organization} catalogs: {exc}"
            ) from exc

        if document.get("errors"):
            raise CatalogError(
                f"error while executing remote query for {organization} catalogs: {document['errors']}"
            )

        result = (document.get("data") or {}).get("find_operator_indices") or {}
        error = result.get("error")
        if error:
            raise CatalogError(
                f"catalog returned an error for {organization}: "
                f"{error.get('status')} {error.get('detail')}"
            )

        indices = [
            OperatorIndex(
                ocp_version=str(item.get("ocp_version")),
                organization=str(item.get("organization")),
                end_of_life=item.get("end_of_life"),
            )
            for item in result.get("data") or []
            if item.get("ocp_version") and item.get("end_of_life") is None
        ]
        logger.debug("Found %d active %s index versions", len(indices), organization)
        return indices
