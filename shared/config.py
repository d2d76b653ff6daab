"""Configuration helpers for environment variables."""

from __future__ import annotations

import os
import logging

from dotenv import load_dotenv


logger = logging.getLogger(__name__)


_TRUE_VALUES = {"1", "true"}
_FALSE_VALUES = {"0", "false"}
_DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
DONOR_NAME_MATCHING_VALUES = ("exact", "case_insensitive_trimmed")


def _should_load_dotenv() -> bool:
    """Return whether local dotenv loading should run."""
    app_env = os.getenv("APP_ENV", "dev").strip().lower()
    return app_env in {"dev", "local"}


if _should_load_dotenv():
    load_dotenv()


def get_env(name: str, default: str | None = None) -> str | None:
    """Return a raw environment value or default."""
    return os.getenv(name, default)


def app_env() -> str:
    """Return the current application environment."""
    return (get_env("APP_ENV", "dev") or "dev").strip() or "dev"


def cors_allow_origins() -> list[str]:
    """Return CORS allowed origins from env with safe environment defaults."""
    raw_origins = get_env("CORS_ALLOW_ORIGINS", "") or ""
    parsed_origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]

    if parsed_origins:
        return parsed_origins

    if app_env().strip().lower() in {"dev", "local"}:
        return ["http://localhost:3000", "http://127.0.0.1:3000"]

    ui_origin = (get_env("UI_ORIGIN", "") or "").strip()
    if ui_origin:
        return [ui_origin]

    logger.warning(
        "cors_allow_origins_empty_in_prod app_env=%s; define CORS_ALLOW_ORIGINS or UI_ORIGIN",
        app_env(),
    )

    return []


def default_page_size() -> int:
    """Return the list page size, clamped to the supported range."""
    raw_value = (get_env("PAGE_SIZE", "") or "").strip()
    if not raw_value:
        return _DEFAULT_PAGE_SIZE

    try:
        page_size = int(raw_value)
    except ValueError:
        logger.warning("invalid_page_size value=%s; using default=%s", raw_value, _DEFAULT_PAGE_SIZE)
        return _DEFAULT_PAGE_SIZE

    return max(1, min(page_size, MAX_PAGE_SIZE))


def donor_name_matching() -> str:
    """Return the donor grouping strategy (`exact` or `case_insensitive_trimmed`)."""
    raw_value = (get_env("DONOR_NAME_MATCHING", "exact") or "exact").strip().lower()
    if raw_value in DONOR_NAME_MATCHING_VALUES:
        return raw_value

    logger.warning("invalid_donor_name_matching value=%s; using exact", raw_value)
    return "exact"


def strict_cursors() -> bool:
    """Return whether cursor/mode mismatches must raise instead of restarting pagination."""
    raw_value = (get_env("STRICT_CURSORS", "") or "").strip().lower()
    if raw_value in _TRUE_VALUES:
        return True
    if raw_value in _FALSE_VALUES:
        return False

    return app_env().strip().lower() in {"dev", "local", "test", "ci"}


def sync_api_key() -> str | None:
    """Return the shared secret required by the content sync endpoint."""
    return get_env("SYNC_API_KEY")


def wordpress_url() -> str:
    """Return the WordPress REST base URL used when the caller does not pass one."""
    return (
        get_env("WORDPRESS_URL", "https://your-wordpress-site.com/wp-json/wp/v2")
        or "https://your-wordpress-site.com/wp-json/wp/v2"
    ).rstrip("/")


def supabase_url() -> str | None:
    """Return Supabase URL when configured."""
    return get_env("SUPABASE_URL")


def supabase_service_role_key() -> str | None:
    """Return Supabase service role key when configured."""
    return get_env("SUPABASE_SERVICE_ROLE_KEY")


def supabase_anon_key() -> str | None:
    """Return Supabase anon key when configured."""
    return get_env("SUPABASE_ANON_KEY")
