"""
app/api/v1/endpoints/settings.py
─────────────────────────────────
User settings endpoints.  Every write goes through the
:class:`ConfigReplicator`, which persists locally at once and pushes to
the remote store after a short debounce.

Routes
------
GET    /api/v1/settings                                Current settings + sync status.
PATCH  /api/v1/settings                                Update display preferences.
POST   /api/v1/settings/pull                           Merge the remote copy now.
POST   /api/v1/settings/lists                          Create a favorite list.
DELETE /api/v1/settings/lists/{list_id}                Delete a user list.
POST   /api/v1/settings/lists/{list_id}/items/{id}     Toggle an item in a list.
PUT    /api/v1/settings/active-list/{list_id}          Select the active list.
POST   /api/v1/settings/hidden/{item_id}               Hide an item.
DELETE /api/v1/settings/hidden/{item_id}               Unhide an item.
DELETE /api/v1/settings/hidden                         Unhide everything.
POST   /api/v1/settings/restored/{item_id}             Toggle a globally ignored item.
GET    /api/v1/settings/export                         Download settings as JSON.
POST   /api/v1/settings/import                         Replace settings from an export.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Response

from app.api.dependencies import get_replicator
from schemas.app_config import NewListIn, PreferencesPatch, SettingsOut
from settings_sync.replicator import ConfigReplicator, InvalidConfigImport, PermanentListError

logger = logging.getLogger(__name__)
router = APIRouter()


def _out(replicator: ConfigReplicator) -> SettingsOut:
    return SettingsOut(
        status=replicator.status.value,
        client_id=replicator.client_id,
        settings=replicator.config.to_wire(),
    )


def _unknown_list(list_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"List '{list_id}' not found.")


@router.get("", response_model=SettingsOut, summary="Current settings")
async def get_settings_doc(replicator: ConfigReplicator = Depends(get_replicator)) -> SettingsOut:
    return _out(replicator)


@router.patch("", response_model=SettingsOut, summary="Update display preferences")
async def update_preferences(
    patch: PreferencesPatch,
    replicator: ConfigReplicator = Depends(get_replicator),
) -> SettingsOut:
    """Apply the fields present in the body; omitted fields are unchanged."""
    replicator.update_preferences(patch)
    return _out(replicator)


@router.post("/pull", response_model=SettingsOut, summary="Merge the remote settings now")
async def pull_settings(replicator: ConfigReplicator = Depends(get_replicator)) -> SettingsOut:
    """
    Fetch the remote copy and keep whichever side was written last.

    Remote failures are reported through ``status`` rather than an error code.
    """
    await replicator.pull()
    return _out(replicator)


# ── favorite lists ────────────────────────────────────────────────────────────


@router.post("/lists", response_model=SettingsOut, status_code=201, summary="Create a favorite list")
async def create_list(
    body: NewListIn,
    replicator: ConfigReplicator = Depends(get_replicator),
) -> SettingsOut:
    new_list = replicator.create_list(body.name)
    logger.info("Created list %s (%s)", new_list.id, new_list.name)
    return _out(replicator)


@router.delete("/lists/{list_id}", response_model=SettingsOut, summary="Delete a favorite list")
async def delete_list(
    list_id: str,
    replicator: ConfigReplicator = Depends(get_replicator),
) -> SettingsOut:
    """
    Delete a user-created list.  If it was active, General becomes active.

    Raises:
        HTTPException 403: The list is one of the permanent lists.
        HTTPException 404: No list with ``list_id``.
    """
    try:
        replicator.delete_list(list_id)
    except PermanentListError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except KeyError as exc:
        raise _unknown_list(list_id) from exc
    return _out(replicator)


@router.post(
    "/lists/{list_id}/items/{item_id}",
    response_model=SettingsOut,
    summary="Toggle an item in a list",
)
async def toggle_list_item(
    list_id: str,
    item_id: str,
    replicator: ConfigReplicator = Depends(get_replicator),
) -> SettingsOut:
    try:
        replicator.toggle_item_in_list(list_id, item_id)
    except KeyError as exc:
        raise _unknown_list(list_id) from exc
    return _out(replicator)


@router.put("/active-list/{list_id}", response_model=SettingsOut, summary="Select the active list")
async def set_active_list(
    list_id: str,
    replicator: ConfigReplicator = Depends(get_replicator),
) -> SettingsOut:
    try:
        replicator.set_active_list(list_id)
    except KeyError as exc:
        raise _unknown_list(list_id) from exc
    return _out(replicator)


# ── hidden / restored items ───────────────────────────────────────────────────


@router.post("/hidden/{item_id}", response_model=SettingsOut, summary="Hide an item")
async def hide_item(item_id: str, replicator: ConfigReplicator = Depends(get_replicator)) -> SettingsOut:
    replicator.hide_item(item_id)
    return _out(replicator)


@router.delete("/hidden/{item_id}", response_model=SettingsOut, summary="Unhide an item")
async def unhide_item(item_id: str, replicator: ConfigReplicator = Depends(get_replicator)) -> SettingsOut:
    replicator.unhide_item(item_id)
    return _out(replicator)


@router.delete("/hidden", response_model=SettingsOut, summary="Unhide every item")
async def clear_hidden(replicator: ConfigReplicator = Depends(get_replicator)) -> SettingsOut:
    replicator.clear_hidden()
    return _out(replicator)


@router.post("/restored/{item_id}", response_model=SettingsOut, summary="Toggle a globally ignored item")
async def toggle_restored(item_id: str, replicator: ConfigReplicator = Depends(get_replicator)) -> SettingsOut:
    replicator.toggle_restored_global(item_id)
    return _out(replicator)


# ── import / export ───────────────────────────────────────────────────────────


@router.get("/export", summary="Download settings as JSON")
async def export_settings(replicator: ConfigReplicator = Depends(get_replicator)) -> Response:
    return Response(
        content=replicator.export_json(),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="pmcrypto_settings.json"'},
    )


@router.post("/import", response_model=SettingsOut, summary="Import settings from an export")
async def import_settings(
    document: Dict[str, Any] = Body(...),
    replicator: ConfigReplicator = Depends(get_replicator),
) -> SettingsOut:
    """
    Replace settings with an exported document (current or legacy format).

    Raises:
        HTTPException 422: The document has no favorite lists or is invalid.
    """
    try:
        replicator.import_json(document)
    except InvalidConfigImport as exc:
        raise HTTPException(status_code=422, detail=f"Invalid settings file: {exc}") from exc
    return _out(replicator)
