"""HTTP client for an InstantDB-style admin API."""

import asyncio
import logging
import requests
from typing import Any, Dict, List, Optional, Sequence
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import DocumentStore, QueryShape, TxOp
from ..models.record import Record

logger = logging.getLogger(__name__)


class DocumentStoreError(RuntimeError):
    """The remote store rejected a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class HTTPDocumentStore(DocumentStore):
    """
    Document store backed by the admin HTTP API.

    Queries go to `POST {base_url}/admin/query` with body {"query": shape};
    transactions go to `POST {base_url}/admin/transact` with body
    {"steps": [["update", entity, id, attrs], ["delete", entity, id], ...]}.
    Blocking calls run on a worker thread.
    """

    def __init__(
        self,
        base_url: str,
        app_id: str,
        admin_token: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 2.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: API root (e.g. https://api.instantdb.com)
            app_id: Application id sent with every request
            admin_token: Admin token for bearer authentication
            timeout: Per-request timeout in seconds
            max_retries: Retries for transient HTTP failures
            backoff_factor: Backoff between retries
            session: Custom requests session
        """
        self.base_url = base_url.rstrip("/")
        self.app_id = app_id
        self.admin_token = admin_token
        self.timeout = timeout
        self._max_retries = max_retries
        self._backoff_factor = backoff_factor
        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with auth headers and retry logic."""
        session = requests.Session()

        retries = Retry(
            total=self._max_retries,
            backoff_factor=self._backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "POST"],
        )
        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        session.headers["Content-Type"] = "application/json"
        session.headers["App-Id"] = self.app_id
        if self.admin_token:
            session.headers["Authorization"] = f"Bearer {self.admin_token}"

        return session

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        response = self._session.post(url, json=payload, timeout=self.timeout)

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            message = str(e)
            try:
                error_data = response.json()
                message = error_data.get("message") or error_data.get("error") or message
            except ValueError:
                pass
            raise DocumentStoreError(message, status_code=response.status_code) from e

        return response.json() if response.text else {}

    @staticmethod
    def to_steps(ops: Sequence[TxOp]) -> List[List[Any]]:
        """Convert operations to the wire format."""
        steps = []
        for op in ops:
            if op.action == "update":
                attrs = dict(op.attrs)
                for key in op.unset:
                    attrs[key] = None
                steps.append(["update", op.entity, op.id, attrs])
            elif op.action == "delete":
                steps.append(["delete", op.entity, op.id])
            else:
                raise ValueError(f"Unsupported transaction action: {op.action}")
        return steps

    async def query(self, shape: QueryShape) -> Dict[str, List[Record]]:
        data = await asyncio.to_thread(self._post, "/admin/query", {"query": shape})
        # The admin API answers either {entity: [...]} or {"data": {entity: [...]}}
        body = data.get("data", data) if isinstance(data, dict) else {}
        return {entity: list(body.get(entity) or []) for entity in shape}

    async def transact(self, ops: Sequence[TxOp]) -> Dict[str, Any]:
        steps = self.to_steps(ops)
        if not steps:
            return {"status": "ok", "ops": 0}
        logger.debug(f"Sending transaction with {len(steps)} steps")
        return await asyncio.to_thread(self._post, "/admin/transact", {"steps": steps})

    async def close(self) -> None:
        self._session.close()
