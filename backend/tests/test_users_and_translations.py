"""
Tests for user sync/admin management and translation records (segment edits,
approval versioning, progress clamping).
"""
import re
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from models import UserRole, TranslationStatus, AuditAction
from services.user_service import (
    create_or_update_user, create_client_user, generate_temp_clerk_id, make_admin_by_email,
    update_user_details,
)
from services.translation_service import (
    _clamp_progress, approve_translation, update_translation_segment, upsert_translation,
)
from models import Segment

ADMIN = {"user_id": "admin-1", "role": "admin"}


def _users_db(existing=None):
    db = MagicMock()
    db.users.find_one = AsyncMock(return_value=existing)
    db.users.insert_one = AsyncMock()
    db.users.update_one = AsyncMock()
    return db


# ============================================
# Users
# ============================================

@pytest.mark.asyncio
async def test_sync_never_changes_existing_role():
    db = _users_db({"user_id": "u1", "clerk_id": "user_abc", "role": "admin"})
    with patch("services.user_service.database.get_db", return_value=db):
        user_id = await create_or_update_user("user_abc", "new@example.com", name="Jane")

    assert user_id == "u1"
    update = db.users.update_one.call_args[0][1]["$set"]
    assert update["email"] == "new@example.com"
    assert update["name"] == "Jane"
    assert "role" not in update


@pytest.mark.asyncio
async def test_first_sync_creates_regular_user():
    db = _users_db()
    with patch("services.user_service.database.get_db", return_value=db), \
            patch("services.user_service.create_audit_log", AsyncMock()):
        await create_or_update_user("user_new", "jane@example.com")

    stored = db.users.insert_one.call_args[0][0]
    assert stored["role"] == UserRole.USER
    assert stored["clerk_id"] == "user_new"


def test_temp_clerk_id_format():
    assert re.fullmatch(r"temp_\d+_[0-9a-z]{9}", generate_temp_clerk_id())


@pytest.mark.asyncio
async def test_admin_created_client_reuses_existing_email():
    db = _users_db({"user_id": "u1", "clerk_id": "user_jane", "email": "jane@example.com"})
    with patch("services.user_service.database.get_db", return_value=db):
        result = await create_client_user("jane@example.com", ADMIN)
    assert result == {"user_id": "u1", "clerk_id": "user_jane", "created": False}
    db.users.insert_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_blank_details_are_cleared_and_blank_email_rejected():
    db = _users_db({"user_id": "u1", "email": "jane@example.com", "name": "Jane", "telephone": "123"})
    with patch("services.user_service.database.get_db", return_value=db), \
            patch("services.user_service.create_audit_log", AsyncMock()):
        await update_user_details("u1", ADMIN, name="  Janet ", telephone="")
        update = db.users.update_one.call_args[0][1]
        assert update["$set"]["name"] == "Janet"
        assert update["$unset"] == {"telephone": ""}

        with pytest.raises(ValueError, match="Email cannot be empty"):
            await update_user_details("u1", ADMIN, email="   ")


@pytest.mark.asyncio
async def test_email_taken_by_another_user_is_rejected():
    db = _users_db()
    db.users.find_one = AsyncMock(side_effect=[
        {"user_id": "u1", "email": "jane@example.com"},
        {"user_id": "u2"},
    ])
    with patch("services.user_service.database.get_db", return_value=db), \
            patch("services.user_service.create_audit_log", AsyncMock()):
        with pytest.raises(ValueError, match="already in use"):
            await update_user_details("u1", ADMIN, email="john@example.com")

    query = db.users.find_one.call_args_list[1][0][0]
    assert query == {"email": "john@example.com", "user_id": {"$ne": "u1"}}
    db.users.update_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_bootstrap_promotion_is_idempotent():
    db = _users_db({"user_id": "u1", "email": "owner@example.com", "role": "admin"})
    with patch("services.user_service.database.get_db", return_value=db):
        result = await make_admin_by_email("owner@example.com")
    assert result["action"] == "unchanged"
    db.users.update_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_bootstrap_email_lookup_ignores_case():
    db = _users_db({"user_id": "u1", "email": "Owner@Example.com", "role": "user"})
    with patch("services.user_service.database.get_db", return_value=db), \
            patch("services.user_service.create_audit_log", AsyncMock()):
        result = await make_admin_by_email("owner@example.com")

    query = db.users.find_one.call_args[0][0]
    assert re.fullmatch(query["email"]["$regex"], "Owner@Example.com", re.IGNORECASE)
    assert query["email"]["$options"] == "i"
    assert result["action"] == "promoted"


# ============================================
# Translations
# ============================================

def _translation(**fields):
    translation = {
        "translation_id": "tr-1",
        "order_id": "order-1",
        "file_name": "a.pdf",
        "status": "review",
        "segments": [
            {"id": "s1", "original_text": "Hallo", "translated_text": "Hello", "is_edited": False, "order": 0},
            {"id": "s2", "original_text": "Welt", "translated_text": "World", "is_edited": False, "order": 1},
        ],
    }
    translation.update(fields)
    return translation


def _translations_db(translation=None, latest_version=None):
    db = MagicMock()
    db.translations.find_one = AsyncMock(return_value=translation)
    db.translations.update_one = AsyncMock()
    db.translations.insert_one = AsyncMock()
    db.translation_versions.find_one = AsyncMock(return_value=latest_version)
    db.translation_versions.insert_one = AsyncMock()
    return db


def test_progress_is_clamped():
    assert _clamp_progress(-5) == 0
    assert _clamp_progress(150) == 100
    assert _clamp_progress("40") == 40


@pytest.mark.asyncio
async def test_upsert_updates_existing_translation_for_same_file():
    db = _translations_db(_translation())
    with patch("services.translation_service.database.get_db", return_value=db):
        translation_id = await upsert_translation(
            order_id="order-1", file_name="a.pdf", file_index=0,
            segments=[Segment(id="s1", original_text="a", translated_text="b", order=0)],
            status=TranslationStatus.REVIEW, progress=120, source_language="de", target_language="en",
            translation_provider="google",
        )

    assert translation_id == "tr-1"
    update = db.translations.update_one.call_args[0][1]["$set"]
    assert update["progress"] == 100
    assert update["translation_provider"] == "google"
    assert "open_router_model" not in update
    db.translations.insert_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_unchanged_segment_text_is_not_marked_edited():
    db = _translations_db(_translation())
    with patch("services.translation_service.database.get_db", return_value=db):
        result = await update_translation_segment("tr-1", "s1", "Hello")
    assert result == {"success": True, "changed": False}
    db.translations.update_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_segment_edit_marks_edited():
    db = _translations_db(_translation())
    with patch("services.translation_service.database.get_db", return_value=db):
        result = await update_translation_segment("tr-1", "s2", "Earth")

    assert result["changed"] is True
    segments = db.translations.update_one.call_args[0][1]["$set"]["segments"]
    assert segments[1]["translated_text"] == "Earth"
    assert segments[1]["is_edited"] is True
    assert segments[1]["edited_at"] is not None
    assert segments[0]["is_edited"] is False


@pytest.mark.asyncio
async def test_editing_an_approved_translation_returns_it_to_review():
    db = _translations_db(_translation(status="approved", approved_at="2026-01-01T00:00:00+00:00"))
    with patch("services.translation_service.database.get_db", return_value=db):
        await update_translation_segment("tr-1", "s2", "Earth")

    update = db.translations.update_one.call_args[0][1]
    assert update["$set"]["status"] == "review"
    assert update["$unset"] == {"approved_at": ""}


@pytest.mark.asyncio
async def test_editing_a_draft_keeps_its_status():
    db = _translations_db(_translation())
    with patch("services.translation_service.database.get_db", return_value=db):
        await update_translation_segment("tr-1", "s2", "Earth")

    update = db.translations.update_one.call_args[0][1]
    assert "status" not in update["$set"]
    assert "$unset" not in update


@pytest.mark.asyncio
async def test_unknown_segment():
    db = _translations_db(_translation())
    with patch("services.translation_service.database.get_db", return_value=db):
        with pytest.raises(ValueError, match="Segment not found"):
            await update_translation_segment("tr-1", "nope", "x")


@pytest.mark.asyncio
async def test_approval_snapshots_next_version():
    db = _translations_db(_translation(), latest_version={"version_number": 2})
    audit = AsyncMock()
    with patch("services.translation_service.database.get_db", return_value=db), \
            patch("services.translation_service.create_audit_log", audit):
        result = await approve_translation("tr-1", ADMIN)

    assert result["version_number"] == 3
    version = db.translation_versions.insert_one.call_args[0][0]
    assert version["version_id"] == result["version_id"]
    assert version["segments"] == _translation()["segments"]
    assert version["approved_by"] == "admin-1"
    update = db.translations.update_one.call_args[0][1]["$set"]
    assert update["status"] == "approved"
    assert update["latest_version_id"] == result["version_id"]
    assert audit.call_args.kwargs["action"] == AuditAction.TRANSLATION_APPROVED


@pytest.mark.asyncio
async def test_first_approval_is_version_one():
    db = _translations_db(_translation(), latest_version=None)
    with patch("services.translation_service.database.get_db", return_value=db), \
            patch("services.translation_service.create_audit_log", AsyncMock()):
        result = await approve_translation("tr-1", ADMIN)
    assert result["version_number"] == 1
