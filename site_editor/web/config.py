"""
Configuration and startup security checks for the image editor service.

Why: the service holds a repository write token. We must prevent obviously
insecure production deployments without burdening local development.

Permissions: the caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod/stage only):
    - A repository token must be available (env or session store file).
    - The contents API base URL must use https.
    - The configured session store file must not be world-readable.
    """
    env = os.getenv("SITE_EDITOR_ENV", "dev")
    if not _is_prod_like(env):
        return  # dev/test remain permissive

    token = (os.getenv("SITE_EDITOR_TOKEN") or "").strip()
    session_file = (os.getenv("SITE_EDITOR_SESSION_FILE") or "").strip()
    if not token and not (session_file and os.path.exists(session_file)):
        raise SystemExit(
            "Refusing to start: no repository token configured (SITE_EDITOR_TOKEN or SITE_EDITOR_SESSION_FILE)."
        )

    api_base = (os.getenv("SITE_EDITOR_API_BASE_URL") or "https://api.github.com").strip().lower()
    if api_base.startswith("http://"):
        raise SystemExit("Refusing to start: SITE_EDITOR_API_BASE_URL must use https in production (got http).")

    if session_file and os.path.exists(session_file):
        mode = os.stat(session_file).st_mode
        if mode & 0o004:
            raise SystemExit(
                f"Refusing to start: session store {session_file} is world-readable. Restrict it to the service user."
            )


__all__ = ["ensure_secure_config_on_startup"]
