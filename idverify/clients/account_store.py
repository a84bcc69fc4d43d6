"""
Account record store clients.

The store maps an account number to its approved reference records, each
carrying an inline face photo and an inline signature. The imaging API
client talks to the bank's imaging service; the in-memory store serves
tests and local demos.
"""

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx
from typing_extensions import Protocol

from ..errors import (
    AccountNotFoundError,
    EmptyCandidateSetError,
    ExternalCollaboratorUnavailableError,
)
from ..models.domain import ReferenceEntry

logger = logging.getLogger(__name__)


class AccountStore(Protocol):
    async def fetch_references(self, account_id: str) -> List[ReferenceEntry]:
        ...


class ImagingApiAccountStore:
    """
    HTTP client for the imaging API.

    GET {base_url}/imaging/get_account_signature-{account_id} returns
    {"approved": [{"photo": <data url>, "signature": <data url>, ...}, ...]}.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        max_bytes: int = 50 * 1024 * 1024,
        cookie: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.max_bytes = max_bytes
        self.headers = {"Cookie": cookie} if cookie else {}
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def fetch_references(self, account_id: str) -> List[ReferenceEntry]:
        url = f"{self.base_url}/imaging/get_account_signature-{account_id}"
        try:
            async with self.client.stream("GET", url, headers=self.headers) as response:
                if response.status_code == 404:
                    raise AccountNotFoundError(f"Account {account_id} not found")
                if response.status_code >= 400:
                    raise ExternalCollaboratorUnavailableError(
                        f"Account store answered HTTP {response.status_code}"
                    )
                body = await self._read_limited(response)
        except httpx.TimeoutException as e:
            logger.error("Account store timed out for %s: %s", account_id, e)
            raise ExternalCollaboratorUnavailableError("Account store timed out")
        except httpx.HTTPError as e:
            logger.error("Account store unreachable for %s: %s", account_id, e)
            raise ExternalCollaboratorUnavailableError(f"Account store unreachable: {e}")

        try:
            data = json.loads(body)
        except ValueError:
            raise ExternalCollaboratorUnavailableError("Account store returned invalid JSON")

        entries = parse_approved(data)
        logger.info("Fetched %d reference entries for account %s", len(entries), account_id)
        return entries

    async def _read_limited(self, response: httpx.Response) -> bytes:
        chunks = []
        size = 0
        async for chunk in response.aiter_bytes():
            size += len(chunk)
            if size > self.max_bytes:
                raise ExternalCollaboratorUnavailableError(
                    f"Account store response exceeds {self.max_bytes} bytes"
                )
            chunks.append(chunk)
        return b"".join(chunks)


def _is_image_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def parse_approved(data: Any) -> List[ReferenceEntry]:
    """
    Validate an imaging API payload and turn it into reference entries.
    """
    approved = data.get("approved") if isinstance(data, dict) else None
    if approved is not None and not isinstance(approved, list):
        raise ExternalCollaboratorUnavailableError(
            "Invalid response format from account store: approved is not a list"
        )
    if not approved:
        raise EmptyCandidateSetError("Account has no approved reference records")

    entries = []
    for index, item in enumerate(approved):
        if not isinstance(item, dict) or not _is_image_string(item.get("photo")) \
                or not _is_image_string(item.get("signature")):
            raise ExternalCollaboratorUnavailableError(
                "Invalid response format from account store: "
                f"photo or signature missing in approved item {index}"
            )
        source_id = item.get("id") or item.get("url") or f"approved[{index}]"
        entries.append(ReferenceEntry(
            source_id=str(source_id),
            photo=item["photo"],
            signature=item["signature"],
        ))
    return entries


class InMemoryAccountStore:
    """
    Dictionary-backed store with the same failure semantics as the API client.
    """

    def __init__(self, accounts: Optional[Mapping[str, Sequence[ReferenceEntry]]] = None):
        self.accounts: Dict[str, List[ReferenceEntry]] = {
            k: list(v) for k, v in (accounts or {}).items()
        }

    async def fetch_references(self, account_id: str) -> List[ReferenceEntry]:
        if account_id not in self.accounts:
            raise AccountNotFoundError(f"Account {account_id} not found")
        entries = self.accounts[account_id]
        if not entries:
            raise EmptyCandidateSetError("Account has no approved reference records")
        return list(entries)
