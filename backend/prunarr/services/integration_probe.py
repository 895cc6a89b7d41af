"""Reachability check for every configured integration, run at startup and on demand."""

import asyncio
import logging

import httpx

from prunarr.config import Settings

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 5.0


def _targets(settings: Settings) -> dict[str, tuple[str, dict] | None]:
    """name -> (status URL, auth headers), or None when the integration is off."""
    cfg = settings.integrations
    arr = lambda c: (f"{c.url}/api/v3/system/status", {"X-Api-Key": c.api_key})  # noqa: E731
    jf_headers = {"X-Emby-Token": cfg.jellyfin.api_key, "Accept": "application/json"}

    targets: dict[str, tuple[str, dict] | None] = {
        "radarr": arr(cfg.radarr) if settings.has_radarr else None,
        "sonarr": arr(cfg.sonarr) if settings.has_sonarr else None,
        "jellyfin": (f"{cfg.jellyfin.url}/System/Info", jf_headers) if settings.has_jellyfin else None,
        "jellyseerr": (
            (f"{cfg.jellyseerr.url}/api/v1/status", {"X-Api-Key": cfg.jellyseerr.api_key})
            if settings.has_jellyseerr else None
        ),
        "jellystat": (
            (f"{cfg.jellystat.url}/api/getLibraries", {"x-api-token": cfg.jellystat.api_key})
            if settings.has_jellystat else None
        ),
    }
    # The bridge plugin is only probed when the preview library depends on it
    if settings.has_symlink_library:
        targets["jellyfin_bridge"] = (f"{cfg.jellyfin.url}/api/oxicleanarr/status", jf_headers)
    return targets


async def probe_all(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> dict:
    """Probe all enabled integrations concurrently. Returns name -> status dict."""
    targets = _targets(settings)
    async with httpx.AsyncClient(timeout=PROBE_TIMEOUT, transport=transport) as client:
        names = [n for n, t in targets.items() if t is not None]
        outcomes = await asyncio.gather(*(_probe(client, *targets[n]) for n in names))

    results = {name: {"status": "not_configured"} for name, t in targets.items() if t is None}
    results.update(zip(names, outcomes))
    failing = [n for n in names if results[n]["status"] != "ok"]
    if failing:
        logger.warning(f"Integrations not healthy: {', '.join(failing)}")
    return results


async def _probe(client: httpx.AsyncClient, url: str, headers: dict) -> dict:
    try:
        resp = await client.get(url, headers=headers)
    except httpx.ConnectError:
        return {"status": "unreachable"}
    except httpx.HTTPError as e:
        return {"status": "error", "detail": str(e)[:200]}
    return {"status": "ok" if resp.is_success else "error", "code": resp.status_code}
