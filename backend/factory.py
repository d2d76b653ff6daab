"""Composition root for backend services."""

from __future__ import annotations

from backend.db.supabase_client import SupabaseClient, SupabaseSettings
from backend.repositories.collections_repository import (
    CollectionsRepository,
    InMemoryCollectionsRepository,
    SupabaseCollectionsRepository,
)
from backend.services.tools import TrustToolService
from backend.services.wordpress_sync import WordPressSyncService
from shared import config


def build_collections_repository() -> CollectionsRepository:
    """Use Supabase when it is configured, otherwise an in-process store."""

    supabase_url = config.supabase_url()
    supabase_key = config.supabase_service_role_key()
    if supabase_url and supabase_key:
        supabase_client = SupabaseClient(
            settings=SupabaseSettings(
                url=supabase_url,
                service_role_key=supabase_key,
                anon_key=config.supabase_anon_key(),
            )
        )
        return SupabaseCollectionsRepository(client=supabase_client)
    return InMemoryCollectionsRepository()


def build_trust_tool_service() -> TrustToolService:
    repository = build_collections_repository()
    return TrustToolService(
        repository=repository,
        wordpress_sync_service=WordPressSyncService(repository),
    )
