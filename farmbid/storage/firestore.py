"""Firestore storage backend leveraging google-cloud-firestore."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from google.api_core.exceptions import AlreadyExists
from google.cloud import firestore
from google.oauth2 import service_account


class FirestoreStorage:
    def __init__(
        self,
        *,
        project_id: str,
        collection: str = "listings",
        credentials_path: str | None = None,
    ) -> None:
        if not project_id:
            raise ValueError("project_id required for firestore backend")
        client_kwargs: dict[str, Any] = {"project": project_id}
        if credentials_path:
            client_kwargs["credentials"] = service_account.Credentials.from_service_account_file(
                credentials_path
            )
        self._client = firestore.Client(**client_kwargs)
        self._collection_name = collection

    def _collection(self):
        return self._client.collection(self._collection_name)

    async def _run(self, func: Callable, *args, **kwargs):
        return await asyncio.to_thread(func, *args, **kwargs)

    async def create_listing(self, record: dict[str, Any]) -> dict[str, Any]:
        document = self._collection().document(record["listing_id"])
        try:
            await self._run(document.create, record)
        except AlreadyExists as exc:
            raise ValueError(f"listing {record['listing_id']} already exists") from exc
        return record

    async def get_listing(self, listing_id: str) -> dict[str, Any]:
        doc = await self._run(self._collection().document(listing_id).get)
        if not doc.exists:
            raise KeyError(listing_id)
        return doc.to_dict()

    async def list_listings(self) -> list[dict[str, Any]]:
        docs = await self._run(lambda: list(self._collection().order_by("created_at").stream()))
        return [doc.to_dict() for doc in docs]

    def _compare_and_set(
        self, listing_id: str, expected_version: int, updates: dict[str, Any]
    ) -> dict[str, Any] | None:
        reference = self._collection().document(listing_id)

        @firestore.transactional
        def apply(transaction) -> dict[str, Any] | None:
            snapshot = reference.get(transaction=transaction)
            if not snapshot.exists:
                raise KeyError(listing_id)
            record = snapshot.to_dict()
            if record.get("version", 0) != expected_version:
                return None
            record.update(updates)
            record["version"] = expected_version + 1
            transaction.set(reference, record)
            return record

        return apply(self._client.transaction())

    async def compare_and_set_listing(
        self, listing_id: str, expected_version: int, updates: dict[str, Any]
    ) -> dict[str, Any] | None:
        return await self._run(self._compare_and_set, listing_id, expected_version, updates)

    async def close(self) -> None:
        await self._run(self._client.close)
