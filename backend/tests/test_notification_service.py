from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest

from butternovel.core.constants import NOTIFICATION_AGGREGATION_WINDOW, NOTIFICATION_MAX_ACTORS
from butternovel.core.errors import NotFoundError, UpstreamServiceError, ValidationError
from butternovel.models import Notification, NotificationType, User
from butternovel.services.notifications.preferences import update_user_preferences
from butternovel.services.notifications.service import (
    archive_all,
    create_notification,
    get_notifications,
    get_unread_count,
    mark_as_archived,
    mark_as_read,
    prune_archived_notifications,
    remove_like_notification,
    serialize_notification,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _as_utc(value):
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _comment_data(novel, comment_id="c-1"):
    return {
        "novel_id": novel.id,
        "novel_slug": novel.slug,
        "novel_title": novel.title,
        "comment_id": comment_id,
        "chapter_number": 3,
    }


def _rows(db, user_id):
    db.expire_all()
    return db.query(Notification).filter(Notification.user_id == user_id).all()


# --- Creation and suppression ---


def test_creates_unread_inbox_notification(db, users, novel):
    row = create_notification(
        db, users["alice"], NotificationType.NEW_FOLLOWER, users["bob"], {}, now=T0
    )

    assert row is not None
    assert row.is_read is False
    assert row.is_archived is False
    assert row.priority == "normal"
    assert row.payload["actors"][0]["name"] == "Bob"
    assert row.payload["actor_count"] == 1
    assert _as_utc(row.created_at) == T0


def test_self_notification_is_suppressed(db, users, novel):
    result = create_notification(
        db, users["alice"], NotificationType.NOVEL_COMMENT, users["alice"], _comment_data(novel), now=T0
    )

    assert result is None
    assert _rows(db, users["alice"]) == []


def test_unknown_recipient_raises_not_found(db, users):
    with pytest.raises(NotFoundError):
        create_notification(db, "u-ghost", NotificationType.NEW_FOLLOWER, users["bob"], {}, now=T0)


def test_unknown_type_raises_validation_error(db, users):
    with pytest.raises(ValidationError):
        create_notification(db, users["alice"], "poke", users["bob"], {}, now=T0)


def test_bad_payload_raises_validation_error(db, users):
    with pytest.raises(ValidationError):
        create_notification(db, users["alice"], NotificationType.LEVEL_UP, None, {"level": 0}, now=T0)


def test_disabled_category_is_a_no_op_until_reenabled(db, users, novel):
    update_user_preferences(db, users["alice"], {"enableCommentNotifications": False})

    muted = create_notification(
        db, users["alice"], NotificationType.NOVEL_COMMENT, users["bob"], _comment_data(novel), now=T0
    )
    assert muted is None
    assert get_unread_count(db, users["alice"]) == 0

    update_user_preferences(db, users["alice"], {"enable_comment_notifications": True})
    created = create_notification(
        db, users["alice"], NotificationType.NOVEL_COMMENT, users["bob"], _comment_data(novel), now=T0
    )
    assert created is not None
    assert len(_rows(db, users["alice"])) == 1


def test_system_types_ignore_category_toggles(db, users):
    update_user_preferences(
        db,
        users["alice"],
        {
            "enable_rating_notifications": False,
            "enable_comment_notifications": False,
            "enable_follow_notifications": False,
            "enable_author_notifications": False,
        },
    )
    row = create_notification(db, users["alice"], NotificationType.LEVEL_UP, None, {"level": 5}, now=T0)
    assert row is not None


@pytest.mark.parametrize(
    "notification_type,expected",
    [
        (NotificationType.SYSTEM_ANNOUNCEMENT, "high"),
        (NotificationType.COMMENT_REPLY, "high"),
        (NotificationType.COMMENT_LIKE, "low"),
        (NotificationType.NOVEL_COMMENT, "normal"),
    ],
)
def test_priority_follows_type(db, users, novel, notification_type, expected):
    data = _comment_data(novel)
    if notification_type == NotificationType.SYSTEM_ANNOUNCEMENT:
        data = {"title": "Maintenance tonight"}
    row = create_notification(db, users["alice"], notification_type, users["bob"], data, now=T0)
    assert row.priority == expected


# --- Aggregation ---


def test_same_key_within_window_merges_into_one_row(db, users, novel):
    first = create_notification(
        db, users["alice"], NotificationType.NOVEL_COMMENT, users["bob"], _comment_data(novel), now=T0
    )
    second = create_notification(
        db,
        users["alice"],
        NotificationType.NOVEL_COMMENT,
        users["carol"],
        _comment_data(novel, comment_id="c-2"),
        now=T0 + timedelta(hours=2),
    )

    rows = _rows(db, users["alice"])
    assert len(rows) == 1
    assert second.id == first.id
    row = rows[0]
    assert row.payload["actor_count"] == 2
    assert [a["id"] for a in row.payload["actors"]] == [users["carol"], users["bob"]]
    assert _as_utc(row.created_at) == T0
    assert _as_utc(row.updated_at) == T0 + timedelta(hours=2)
    assert row.is_read is False


def test_repeat_actor_does_not_inflate_count(db, users, novel):
    for minutes in (0, 5):
        create_notification(
            db, users["alice"], NotificationType.NEW_FOLLOWER, users["bob"], {}, now=T0 + timedelta(minutes=minutes)
        )
    row = _rows(db, users["alice"])[0]
    assert row.payload["actor_count"] == 1


def test_same_key_outside_window_creates_new_row(db, users, novel):
    create_notification(
        db, users["alice"], NotificationType.NOVEL_COMMENT, users["bob"], _comment_data(novel), now=T0
    )
    create_notification(
        db,
        users["alice"],
        NotificationType.NOVEL_COMMENT,
        users["carol"],
        _comment_data(novel),
        now=T0 + NOTIFICATION_AGGREGATION_WINDOW + timedelta(minutes=1),
    )

    assert len(_rows(db, users["alice"])) == 2


def test_read_notification_is_not_merged_into(db, users, novel):
    first = create_notification(
        db, users["alice"], NotificationType.NOVEL_COMMENT, users["bob"], _comment_data(novel), now=T0
    )
    mark_as_read(db, first.id, users["alice"])
    create_notification(
        db, users["alice"], NotificationType.NOVEL_COMMENT, users["carol"], _comment_data(novel), now=T0
    )

    assert len(_rows(db, users["alice"])) == 2


def test_aggregation_disabled_keeps_rows_separate(db, users, novel):
    update_user_preferences(db, users["alice"], {"aggregationEnabled": False})
    for actor in ("bob", "carol"):
        create_notification(
            db, users["alice"], NotificationType.NOVEL_COMMENT, users[actor], _comment_data(novel), now=T0
        )

    rows = _rows(db, users["alice"])
    assert len(rows) == 2
    assert all(r.aggregation_key is None for r in rows)


def test_different_targets_do_not_merge(db, users, novel):
    for comment_id in ("c-1", "c-2"):
        create_notification(
            db,
            users["alice"],
            NotificationType.COMMENT_LIKE,
            users["bob"],
            _comment_data(novel, comment_id=comment_id),
            now=T0,
        )
    assert len(_rows(db, users["alice"])) == 2


def test_actor_list_is_bounded_but_count_keeps_growing(db, users, novel):
    extra = [User(id=f"u-fan{i}", email=f"fan{i}@example.com", name=f"Fan {i}") for i in range(NOTIFICATION_MAX_ACTORS + 2)]
    db.add_all(extra)
    db.commit()
    for i, fan in enumerate(extra):
        create_notification(
            db, users["alice"], NotificationType.NEW_FOLLOWER, fan.id, {}, now=T0 + timedelta(minutes=i)
        )

    row = _rows(db, users["alice"])[0]
    assert row.payload["actor_count"] == len(extra)
    assert len(row.payload["actors"]) == NOTIFICATION_MAX_ACTORS
    assert row.payload["actors"][0]["id"] == extra[-1].id


def test_aggregated_notification_renders_people_form(db, users, novel):
    data = _comment_data(novel)
    for actor in ("bob", "carol", "dave"):
        create_notification(db, users["alice"], NotificationType.COMMENT_LIKE, users[actor], data, now=T0)

    out = serialize_notification(_rows(db, users["alice"])[0])
    assert out["title"] == "3 people liked your comment"
    assert out["content"] == "Dave, Carol and 1 other"
    assert out["isAggregated"] is True
    assert out["link"] == "/novels/moonlit-garden/chapters/3?openComment=c-1"


# --- Listing ---


def test_get_notifications_orders_by_latest_activity_and_filters_archive(db, users, novel):
    older = create_notification(db, users["alice"], NotificationType.LEVEL_UP, None, {"level": 2}, now=T0)
    newer = create_notification(
        db, users["alice"], NotificationType.LEVEL_UP, None, {"level": 3}, now=T0 + timedelta(hours=1)
    )
    archived = create_notification(
        db, users["alice"], NotificationType.LEVEL_UP, None, {"level": 4}, now=T0 + timedelta(hours=2)
    )
    mark_as_archived(db, archived.id, users["alice"])

    inbox = get_notifications(db, users["alice"], is_archived=False)
    assert [r.id for r in inbox.items] == [newer.id, older.id]
    assert inbox.total == 2

    archive = get_notifications(db, users["alice"], is_archived=True)
    assert [r.id for r in archive.items] == [archived.id]


def test_merge_moves_notification_to_top(db, users, novel):
    follow = create_notification(db, users["alice"], NotificationType.NEW_FOLLOWER, users["bob"], {}, now=T0)
    create_notification(
        db, users["alice"], NotificationType.LEVEL_UP, None, {"level": 2}, now=T0 + timedelta(hours=1)
    )
    create_notification(
        db, users["alice"], NotificationType.NEW_FOLLOWER, users["carol"], {}, now=T0 + timedelta(hours=2)
    )

    page = get_notifications(db, users["alice"])
    assert page.items[0].id == follow.id


def test_pagination_is_clamped(db, users):
    for level in range(2, 7):
        create_notification(
            db, users["alice"], NotificationType.LEVEL_UP, None, {"level": level}, now=T0 + timedelta(minutes=level)
        )

    page = get_notifications(db, users["alice"], page=0, limit=0)
    assert page.page == 1
    assert page.limit == 1
    assert len(page.items) == 1
    assert page.has_more is True

    big = get_notifications(db, users["alice"], page=-3, limit=1000)
    assert big.limit == 100
    assert len(big.items) == 5

    second = get_notifications(db, users["alice"], page=2, limit=2)
    assert len(second.items) == 2
    assert second.has_more is True


# --- Lifecycle ---


def test_mark_as_read_is_idempotent(db, users):
    row = create_notification(db, users["alice"], NotificationType.LEVEL_UP, None, {"level": 2}, now=T0)

    first = mark_as_read(db, row.id, users["alice"], now=T0 + timedelta(minutes=1))
    read_at = first.read_at
    again = mark_as_read(db, row.id, users["alice"], now=T0 + timedelta(minutes=5))

    assert again.is_read is True
    assert again.read_at == read_at
    assert get_unread_count(db, users["alice"]) == 0


def test_wrong_owner_gets_not_found_and_nothing_changes(db, users):
    row = create_notification(db, users["alice"], NotificationType.LEVEL_UP, None, {"level": 2}, now=T0)

    with pytest.raises(NotFoundError):
        mark_as_read(db, row.id, users["bob"])
    with pytest.raises(NotFoundError):
        mark_as_archived(db, row.id, users["bob"])

    stored = _rows(db, users["alice"])[0]
    assert stored.is_read is False
    assert stored.is_archived is False


def test_missing_notification_not_found(db, users):
    with pytest.raises(NotFoundError):
        mark_as_read(db, 12345, users["alice"])


def test_archive_keeps_read_state_and_is_idempotent(db, users):
    row = create_notification(db, users["alice"], NotificationType.LEVEL_UP, None, {"level": 2}, now=T0)

    archived = mark_as_archived(db, row.id, users["alice"], now=T0 + timedelta(minutes=1))
    archived_at = archived.archived_at
    again = mark_as_archived(db, row.id, users["alice"], now=T0 + timedelta(minutes=9))

    assert again.is_archived is True
    assert again.is_read is False
    assert again.archived_at == archived_at
    # read after archive does not bring it back to the inbox
    mark_as_read(db, row.id, users["alice"])
    assert get_notifications(db, users["alice"], is_archived=False).items == []


def test_archive_all_then_again_returns_zero(db, users, novel):
    create_notification(db, users["alice"], NotificationType.LEVEL_UP, None, {"level": 2}, now=T0)
    create_notification(db, users["alice"], NotificationType.NEW_FOLLOWER, users["bob"], {}, now=T0)
    create_notification(db, users["bob"], NotificationType.LEVEL_UP, None, {"level": 2}, now=T0)

    assert archive_all(db, users["alice"]) == 2
    assert get_notifications(db, users["alice"], is_archived=False).items == []
    assert archive_all(db, users["alice"]) == 0
    # other users untouched
    assert get_unread_count(db, users["bob"]) == 1


def test_unread_count_excludes_read_and_archived(db, users):
    rows = [
        create_notification(db, users["alice"], NotificationType.LEVEL_UP, None, {"level": lvl}, now=T0)
        for lvl in (2, 3, 4)
    ]
    mark_as_read(db, rows[0].id, users["alice"])
    mark_as_archived(db, rows[1].id, users["alice"])

    assert get_unread_count(db, users["alice"]) == 1


def test_comment_scenario_end_to_end(db, users, novel):
    sender = mock.Mock()
    update_user_preferences(
        db, users["alice"], {"emailCommentNotifications": False, "enableCommentNotifications": True}
    )

    create_notification(
        db, users["alice"], NotificationType.NOVEL_COMMENT, users["bob"], _comment_data(novel),
        now=T0, email_sender=sender,
    )
    assert len(_rows(db, users["alice"])) == 1
    sender.assert_not_called()

    row = create_notification(
        db, users["alice"], NotificationType.NOVEL_COMMENT, users["carol"], _comment_data(novel, "c-2"),
        now=T0 + timedelta(minutes=30), email_sender=sender,
    )
    rows = _rows(db, users["alice"])
    assert len(rows) == 1
    assert rows[0].payload["actor_count"] == 2
    assert rows[0].is_read is False

    mark_as_read(db, row.id, users["alice"])
    assert _rows(db, users["alice"])[0].is_read is True

    archive_all(db, users["alice"])
    assert get_unread_count(db, users["alice"]) == 0
    sender.assert_not_called()


# --- Email ---


def test_email_sent_when_master_and_category_enabled(db, users, novel):
    update_user_preferences(db, users["alice"], {"email_notifications": True, "email_comment_notifications": True})
    sender = mock.Mock(return_value=True)

    create_notification(
        db, users["alice"], NotificationType.NOVEL_COMMENT, users["bob"], _comment_data(novel),
        now=T0, email_sender=sender,
    )

    sender.assert_called_once()
    to_email, template_type, template_data = sender.call_args.args
    assert to_email == "alice@example.com"
    assert template_type == "novel_comment"
    assert template_data["title"] == 'Bob commented on your novel "Moonlit Garden"'


def test_category_email_requires_master_switch(db, users, novel):
    update_user_preferences(db, users["alice"], {"email_comment_notifications": True})
    sender = mock.Mock()

    create_notification(
        db, users["alice"], NotificationType.NOVEL_COMMENT, users["bob"], _comment_data(novel),
        now=T0, email_sender=sender,
    )

    sender.assert_not_called()


def test_email_failure_does_not_undo_notification(db, users, novel):
    update_user_preferences(db, users["alice"], {"email_notifications": True, "email_follow_notifications": True})
    sender = mock.Mock(side_effect=UpstreamServiceError("SMTP send failed"))

    row = create_notification(
        db, users["alice"], NotificationType.NEW_FOLLOWER, users["bob"], {}, now=T0, email_sender=sender
    )

    sender.assert_called_once()
    assert row is not None
    assert len(_rows(db, users["alice"])) == 1


def test_unexpected_email_error_is_logged_not_raised(db, users, novel, caplog):
    update_user_preferences(db, users["alice"], {"email_notifications": True, "email_follow_notifications": True})
    sender = mock.Mock(side_effect=RuntimeError("template exploded"))

    row = create_notification(
        db, users["alice"], NotificationType.NEW_FOLLOWER, users["bob"], {}, now=T0, email_sender=sender
    )

    assert row is not None
    assert len(_rows(db, users["alice"])) == 1
    assert "could not be prepared" in caplog.text


def test_merges_do_not_send_another_email(db, users, novel):
    update_user_preferences(db, users["alice"], {"email_notifications": True, "email_follow_notifications": True})
    sender = mock.Mock()

    for actor in ("bob", "carol"):
        create_notification(
            db, users["alice"], NotificationType.NEW_FOLLOWER, users[actor], {}, now=T0, email_sender=sender
        )

    assert sender.call_count == 1


# --- Unlike and retention ---


def test_remove_like_drops_actor_then_row(db, users, novel):
    data = _comment_data(novel)
    for actor in ("bob", "carol"):
        create_notification(db, users["alice"], NotificationType.COMMENT_LIKE, users[actor], data, now=T0)

    assert remove_like_notification(db, users["alice"], users["carol"], NotificationType.COMMENT_LIKE, "c-1") is True
    row = _rows(db, users["alice"])[0]
    assert row.payload["actor_count"] == 1
    assert [a["id"] for a in row.payload["actors"]] == [users["bob"]]

    assert remove_like_notification(db, users["alice"], users["bob"], "comment_like", "c-1") is True
    assert _rows(db, users["alice"]) == []


def test_remove_like_for_unknown_actor_changes_nothing(db, users, novel):
    create_notification(
        db, users["alice"], NotificationType.COMMENT_LIKE, users["bob"], _comment_data(novel), now=T0
    )
    assert remove_like_notification(db, users["alice"], users["dave"], NotificationType.COMMENT_LIKE, "c-1") is False
    assert len(_rows(db, users["alice"])) == 1


def test_remove_like_rejects_non_like_types(db, users):
    with pytest.raises(ValidationError):
        remove_like_notification(db, users["alice"], users["bob"], NotificationType.NEW_FOLLOWER, "x")


def test_prune_deletes_only_old_archived(db, users):
    old = create_notification(db, users["alice"], NotificationType.LEVEL_UP, None, {"level": 2}, now=T0)
    recent = create_notification(db, users["alice"], NotificationType.LEVEL_UP, None, {"level": 3}, now=T0)
    inbox = create_notification(db, users["alice"], NotificationType.LEVEL_UP, None, {"level": 4}, now=T0)
    mark_as_archived(db, old.id, users["alice"], now=T0)
    mark_as_archived(db, recent.id, users["alice"], now=T0 + timedelta(days=80))

    deleted = prune_archived_notifications(db, now=T0 + timedelta(days=91), retention_days=90)

    assert deleted == 1
    remaining = {r.id for r in _rows(db, users["alice"])}
    assert remaining == {recent.id, inbox.id}
